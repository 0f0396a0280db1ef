"""Command parser for interpreting chat messages."""

from abc import ABC
from dataclasses import dataclass


class Command(ABC):
    """Base class for all commands."""

    pass


@dataclass(frozen=True)
class SelectCommand(Command):
    """Command to select a listed item by number."""

    index: int


@dataclass(frozen=True)
class NextCommand(Command):
    """Command to show the next page."""

    pass


@dataclass(frozen=True)
class PreviousCommand(Command):
    """Command to show the previous page."""

    pass


@dataclass(frozen=True)
class CancelCommand(Command):
    """Command to abandon the current selection."""

    pass


@dataclass(frozen=True)
class InvalidCommand(Command):
    """Represents an invalid or unrecognized reply."""

    original_input: str
    reason: str = "Unknown command"


@dataclass(frozen=True)
class ClaimOwnerCommand(Command):
    """Command to become the bot owner."""

    pass


@dataclass(frozen=True)
class PromoteCommand(Command):
    """Command to make the replied-to user an admin."""

    pass


@dataclass(frozen=True)
class DemoteCommand(Command):
    """Command to remove the replied-to user from the admins."""

    pass


@dataclass(frozen=True)
class TagAllCommand(Command):
    """Command to mention every member of the current group."""

    pass


@dataclass(frozen=True)
class HiddenTagCommand(Command):
    """Command to start the group selection flow for a hidden mention."""

    pass


class CommandParser:
    """Parses message text into Command objects.

    Replies to an active selection are parsed with ``parse_reply``;
    everything else goes through ``parse_keyword``.
    """

    # Navigation mappings
    NEXT_COMMANDS = {"n", "next"}
    PREVIOUS_COMMANDS = {"p", "prev"}
    CANCEL_COMMANDS = {"c", "cancel"}

    # Top-level keywords
    KEYWORDS = {
        "!setowner": ClaimOwnerCommand,
        "!setadmin": PromoteCommand,
        "!deladmin": DemoteCommand,
        "!tag": TagAllCommand,
        "!htag": HiddenTagCommand,
    }

    @staticmethod
    def normalize(text: str) -> str:
        """Trim and lower-case message text."""
        return text.strip().lower()

    def parse_reply(self, input_str: str) -> Command:
        """
        Parse a reply sent while a selection session is active.

        Args:
            input_str: The raw message text.

        Returns:
            A navigation, selection or invalid command.
        """
        cleaned = self.normalize(input_str)

        if not cleaned:
            return InvalidCommand(original_input=input_str, reason="Empty input")

        if cleaned in self.NEXT_COMMANDS:
            return NextCommand()

        if cleaned in self.PREVIOUS_COMMANDS:
            return PreviousCommand()

        if cleaned in self.CANCEL_COMMANDS:
            return CancelCommand()

        # Range is checked against the session, not here
        try:
            return SelectCommand(index=int(cleaned))
        except ValueError:
            pass

        return InvalidCommand(original_input=input_str, reason="Not a number")

    def parse_keyword(self, input_str: str) -> Command | None:
        """
        Parse a top-level command keyword.

        Returns:
            The matching command, or None when the text is not a keyword.
        """
        command_type = self.KEYWORDS.get(self.normalize(input_str))
        if command_type is None:
            return None
        return command_type()
