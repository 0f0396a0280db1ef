"""CommandDispatcher - Main orchestrator for the WhatsApp tag bot."""

import logging

from .interfaces import InboundMessage, MessagingGateway, Settings, SettingsStore
from .core import (
    Access,
    authorize,
    CommandParser,
    Command,
    SelectCommand,
    NextCommand,
    PreviousCommand,
    CancelCommand,
    ClaimOwnerCommand,
    PromoteCommand,
    DemoteCommand,
    TagAllCommand,
    HiddenTagCommand,
    Navigation,
    PageRenderer,
    SelectableItem,
    SessionRegistry,
    sort_items,
)
from .config import Config
from .errors import AlreadyExistsError, EmptyListError, GatewayError, NotFoundError, OutOfRangeError

logger = logging.getLogger(__name__)


class CommandDispatcher:
    """Main dispatcher handling every inbound message.

    A sender with an active selection session is in the "awaiting choice"
    state and their text is read as navigation or a selection. Anyone else
    is idle and their text is matched against the command keywords;
    unmatched text is ignored.

    Messages are handled one at a time, so the session registry and the
    settings need no locking.
    """

    INVALID_SELECTION_TEXT = (
        "⚠️ Invalid selection. Please reply with a number from the list, "
        "or use 'n', 'p', 'c'."
    )
    OWNER_ONLY_TEXT = "❌ Only the owner can use this command."
    NOT_SAVED_TEXT = "⚠️ The change could not be saved and will be lost on restart."
    HIDDEN_MENTION_TEXT = "🚨"

    def __init__(
        self,
        gateway: MessagingGateway,
        settings_store: SettingsStore,
        config: Config | None = None,
    ):
        """
        Initialize the dispatcher.

        Args:
            gateway: Gateway for sending/receiving messages and group queries.
            settings_store: Store holding owner and admin identities.
            config: Bot configuration (uses defaults if None).
        """
        self.gateway = gateway
        self.settings_store = settings_store
        self.config = config or Config()
        self.settings: Settings = settings_store.load()

        # Initialize components
        self.parser = CommandParser()
        self.renderer = PageRenderer()
        self.sessions = SessionRegistry(
            timeout_seconds=self.config.session_timeout_minutes * 60
        )

        # Register message handler
        self.gateway.on_message(self.handle_message)

    def start(self) -> None:
        """Start the bot by connecting to the gateway."""
        logger.info(f"Bot owner: {self.settings.owner or 'Not set'}")
        logger.info(f"Admins: {sorted(self.settings.admins)}")
        self.gateway.connect()
        logger.info("Bot started and listening for messages")

    def stop(self) -> None:
        """Stop the bot by disconnecting the gateway."""
        logger.info("Stopping bot...")
        pending = self.sessions.session_count()
        if pending:
            logger.info(f"Dropping {pending} unfinished selection session(s)")
        self.gateway.disconnect()
        logger.info("Bot stopped")

    def reload_settings(self) -> Settings:
        """Re-read settings from the store."""
        self.settings = self.settings_store.load()
        return self.settings

    def handle_message(self, message: InboundMessage) -> None:
        """
        Handle an incoming message.

        Args:
            message: The received message.
        """
        sender = message.sender
        logger.debug(f"[{sender}] Received in {message.chat}: {message.text!r}")

        try:
            expired = self.sessions.cleanup_expired()
            if expired:
                logger.info(f"Dropped {expired} expired session(s)")

            if self.sessions.get(sender) is not None:
                self._handle_session_reply(message)
                return

            command = self.parser.parse_keyword(message.text)
            if command is None:
                return

            logger.info(f"[{sender}] Command: {command.__class__.__name__}")
            self._process_command(command, message)

        except Exception:
            logger.exception(f"[{sender}] Error handling message")

    def _handle_session_reply(self, message: InboundMessage) -> None:
        """Handle navigation or a selection from a sender with an active session."""
        sender = message.sender
        command = self.parser.parse_reply(message.text)

        if isinstance(command, NextCommand):
            if self.sessions.advance(sender) is Navigation.MOVED:
                self._show_page(sender)
            else:
                self._reply(sender, "You are already on the last page.")
            return

        if isinstance(command, PreviousCommand):
            if self.sessions.retreat(sender) is Navigation.MOVED:
                self._show_page(sender)
            else:
                self._reply(sender, "You are already on the first page.")
            return

        if isinstance(command, CancelCommand):
            self.sessions.cancel(sender)
            self._reply(sender, "Process cancelled successfully.")
            return

        if isinstance(command, SelectCommand):
            self._handle_select(sender, command.index)
            return

        logger.debug(f"[{sender}] Invalid reply: {message.text!r}")
        self._reply(sender, self.INVALID_SELECTION_TEXT)

    def _handle_select(self, sender: str, index: int) -> None:
        """
        Run the hidden mention for the selected group.

        The session is consumed whether or not the mention succeeds.
        """
        try:
            group = self.sessions.select(sender, index)
        except OutOfRangeError as e:
            logger.debug(f"[{sender}] {e}")
            self._reply(sender, self.INVALID_SELECTION_TEXT)
            return

        logger.info(f"[HTAG] {sender} chose group: {group.label}")

        try:
            self._send_hidden_mention(group)
        except GatewayError as e:
            logger.error(f"[X] Error sending hidden mention to {group.id}: {e}")
            self._reply(sender, "❌ An error occurred. I might not be an admin in that group.")
        else:
            self._reply(sender, f'✅ Hidden mention sent successfully to "{group.label}".')
        finally:
            self.sessions.cancel(sender)

    def _send_hidden_mention(self, group: SelectableItem) -> None:
        """Notify every member of a group without listing them."""
        metadata = self.gateway.fetch_group_metadata(group.id)
        self.gateway.send_message(
            group.id,
            self.HIDDEN_MENTION_TEXT,
            mentions=list(metadata.participants),
        )

    def _process_command(self, command: Command, message: InboundMessage) -> None:
        """
        Run a top-level command.

        Access is computed from the current settings for every message.
        """
        access = authorize(message.sender, self.settings)

        if isinstance(command, ClaimOwnerCommand):
            self._claim_owner(message)
        elif isinstance(command, PromoteCommand):
            self._promote(message, access)
        elif isinstance(command, DemoteCommand):
            self._demote(message, access)
        elif isinstance(command, TagAllCommand):
            self._tag_all(message, access)
        elif isinstance(command, HiddenTagCommand):
            self._start_hidden_tag(message, access)

    def _claim_owner(self, message: InboundMessage) -> None:
        try:
            settings = self.settings.with_owner(message.sender)
        except AlreadyExistsError:
            self._reply(message.chat, "An owner has already been set.", quoted=message)
            return

        saved = self._commit(settings)
        self._reply(
            message.chat,
            self._confirmation("✅ Success! You are now the bot owner.", saved),
            quoted=message,
        )
        logger.info(f"[+] OWNER SET: {message.sender}")

    def _promote(self, message: InboundMessage, access: Access) -> None:
        if not access.is_owner:
            self._reply(message.chat, self.OWNER_ONLY_TEXT, quoted=message)
            return

        target = message.quoted_participant
        if target is None:
            self._reply(
                message.chat,
                "ℹ️ Please reply to a user's message to make them an admin.",
                quoted=message,
            )
            return

        try:
            settings = self.settings.with_admin(target)
        except AlreadyExistsError:
            self._reply(message.chat, "⚠️ This user is already an admin.", quoted=message)
            return

        saved = self._commit(settings)
        self._reply(
            message.chat,
            self._confirmation("✅ User has been promoted to admin.", saved),
            quoted=message,
        )
        logger.info(f"[+] ADMIN ADDED: {target}")

    def _demote(self, message: InboundMessage, access: Access) -> None:
        if not access.is_owner:
            self._reply(message.chat, self.OWNER_ONLY_TEXT, quoted=message)
            return

        target = message.quoted_participant
        if target is None:
            self._reply(
                message.chat,
                "ℹ️ Please reply to a user's message to remove them.",
                quoted=message,
            )
            return

        try:
            settings = self.settings.without_admin(target)
        except NotFoundError:
            self._reply(message.chat, "⚠️ This user is not an admin.", quoted=message)
            return

        saved = self._commit(settings)
        self._reply(
            message.chat,
            self._confirmation("✅ User has been demoted from admin.", saved),
            quoted=message,
        )
        logger.info(f"[-] ADMIN REMOVED: {target}")

    def _tag_all(self, message: InboundMessage, access: Access) -> None:
        """Mention every member of the group the command was sent in."""
        if not access.is_authorized:
            self._reply(
                message.chat,
                "❌ You are not authorized to use this command.",
                quoted=message,
            )
            return

        if not message.is_group:
            self._reply(
                message.chat,
                "This command can only be used in a group.",
                quoted=message,
            )
            return

        logger.info(f"[!] Authorized !tag from {message.sender} in group {message.chat}")

        try:
            group = self.gateway.fetch_group_metadata(message.chat)
            mentions = list(group.participants)
            lines = ["👥 Tagging all members:", ""]
            lines.extend(f"@{_user_part(member)}" for member in mentions)
            # Only our own messages can be edited
            self.gateway.send_message(
                message.chat,
                "\n".join(lines),
                mentions=mentions,
                edit=message if message.from_me else None,
            )
        except GatewayError as e:
            logger.error(f"[X] Error during !tag in {message.chat}: {e}")
            self._reply(message.chat, "❌ Could not tag the members of this group.", quoted=message)

    def _start_hidden_tag(self, message: InboundMessage, access: Access) -> None:
        """Start the group selection flow in the sender's own chat."""
        if not access.is_authorized:
            logger.debug(f"[{message.sender}] Ignoring unauthorized !htag")
            return

        if not message.is_self_chat:
            self._reply(
                message.chat,
                "ℹ️ Please use `!htag` in your private chat with me ('Message yourself').",
                quoted=message,
            )
            return

        sender = message.sender
        self._reply(sender, "Fetching your group list, this may take a moment...")

        try:
            groups = self.gateway.fetch_all_groups()
        except GatewayError as e:
            logger.error(f"[X] Error fetching groups for htag: {e}")
            self._reply(sender, "❌ A fatal error occurred while fetching group list.")
            return

        items = sort_items([SelectableItem(id=g.id, label=g.subject) for g in groups])

        try:
            self.sessions.start(sender, items)
        except EmptyListError:
            self._reply(sender, "I am not a member of any groups.")
            return

        self._show_page(sender)
        logger.info(f"[HTAG] Started process for {sender} with {len(items)} group(s)")

    def _show_page(self, identity: str) -> None:
        session = self.sessions.get(identity)
        if session is not None:
            self._reply(identity, self.renderer.render(session))

    def _commit(self, settings: Settings) -> bool:
        """Adopt new settings and persist them before anything is confirmed."""
        self.settings = settings
        return self.settings_store.save(settings)

    def _confirmation(self, text: str, saved: bool) -> str:
        if saved:
            return text
        return f"{text}\n{self.NOT_SAVED_TEXT}"

    def _reply(self, chat: str, text: str, quoted: InboundMessage | None = None) -> None:
        """Send a reply, logging delivery failures instead of raising."""
        try:
            self.gateway.send_message(chat, text, quoted=quoted)
        except GatewayError as e:
            logger.error(f"[{chat}] Failed to send reply: {e}")


def _user_part(identity: str) -> str:
    """Get the user part of an identity ("123@s.whatsapp.net" -> "123")."""
    return identity.split("@")[0]
