"""Abstract interface for the messaging gateway."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable

GROUP_SUFFIX = "@g.us"


@dataclass(frozen=True)
class InboundMessage:
    """A text message received from the network.

    Attributes:
        id: Message ID, used for quoting or editing it.
        chat: The conversation the message was posted in.
        sender: The identity that wrote the message.
        text: Message text.
        quoted_participant: Author of the message this one replies to.
        from_me: True if sent from the bot's own account.
    """

    id: str
    chat: str
    sender: str
    text: str
    quoted_participant: str | None = None
    from_me: bool = False

    @property
    def is_group(self) -> bool:
        """Check if the message was posted in a group."""
        return self.chat.endswith(GROUP_SUFFIX)

    @property
    def is_self_chat(self) -> bool:
        """Check if the message was posted in the sender's own chat."""
        return self.chat == self.sender


@dataclass(frozen=True)
class GroupMetadata:
    """A group and its members."""

    id: str
    subject: str
    participants: tuple[str, ...] = field(default_factory=tuple)


class MessagingGateway(ABC):
    """Abstract interface for sending/receiving messages and group queries.

    Every failure is reported as GatewayError.
    """

    @abstractmethod
    def send_message(
        self,
        chat: str,
        text: str,
        mentions: list[str] | None = None,
        quoted: InboundMessage | None = None,
        edit: InboundMessage | None = None,
    ) -> str | None:
        """Send a text message to a chat.

        Args:
            chat: The destination chat identity.
            text: The message text.
            mentions: Identities to notify as mentions.
            quoted: Message to quote in the reply.
            edit: Own message to replace instead of sending a new one.

        Returns:
            The ID of the sent message, if the gateway reports one.
        """
        pass

    @abstractmethod
    def fetch_group_metadata(self, group_id: str) -> GroupMetadata:
        """Fetch a group's subject and member list."""
        pass

    @abstractmethod
    def fetch_all_groups(self) -> list[GroupMetadata]:
        """Fetch every group the connected account participates in."""
        pass

    @abstractmethod
    def on_message(self, callback: Callable[[InboundMessage], None]) -> None:
        """Register a callback for incoming messages."""
        pass

    @abstractmethod
    def connect(self) -> None:
        """Connect to the gateway."""
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """Disconnect from the gateway."""
        pass
