"""Session registry holding at most one selection session per identity."""

import logging
import time
from dataclasses import dataclass
from enum import Enum

from ..errors import EmptyListError, NoActiveSessionError, OutOfRangeError
from .session import PAGE_SIZE, SelectableItem, Session

logger = logging.getLogger(__name__)


class Navigation(Enum):
    """Outcome of a page navigation request."""

    MOVED = "moved"
    ALREADY_FIRST = "already_first"
    ALREADY_LAST = "already_last"
    NO_SESSION = "no_session"


@dataclass
class SessionEntry:
    """Internal entry storing session and metadata."""

    session: Session
    last_access: float  # Unix timestamp


class SessionRegistry:
    """Manages selection sessions for multiple identities.

    Starting a session for an identity that already has one replaces it.
    Sessions optionally expire after a period of inactivity.
    """

    def __init__(self, page_size: int = PAGE_SIZE, timeout_seconds: int = 0):
        """
        Initialize the session registry.

        Args:
            page_size: Items shown per page.
            timeout_seconds: Seconds of inactivity before a session expires.
                            Zero disables expiry.
        """
        self._sessions: dict[str, SessionEntry] = {}
        self._page_size = page_size
        self._timeout = timeout_seconds

    def start(self, identity: str, items: list[SelectableItem]) -> Session:
        """
        Start a session at page 1, replacing any existing one.

        Args:
            identity: The user the session belongs to.
            items: Items to choose from, already in display order.

        Returns:
            The new session.

        Raises:
            EmptyListError: If items is empty. No session is created.
        """
        if not items:
            raise EmptyListError("Nothing to select from")

        if identity in self._sessions:
            logger.info(f"[{identity}] Replacing existing session")

        session = Session(owner=identity, items=items, page=1, page_size=self._page_size)
        self._sessions[identity] = SessionEntry(session=session, last_access=time.time())
        return session

    def get(self, identity: str) -> Session | None:
        """Get the active session for an identity, or None."""
        entry = self._sessions.get(identity)
        if entry is None or self._is_expired(entry, time.time()):
            return None
        return entry.session

    def advance(self, identity: str) -> Navigation:
        """Move to the next page if there is one."""
        session = self.get(identity)
        if session is None:
            return Navigation.NO_SESSION
        if not session.has_next():
            return Navigation.ALREADY_LAST
        self._update(identity, session.next_page())
        return Navigation.MOVED

    def retreat(self, identity: str) -> Navigation:
        """Move to the previous page if there is one."""
        session = self.get(identity)
        if session is None:
            return Navigation.NO_SESSION
        if not session.has_previous():
            return Navigation.ALREADY_FIRST
        self._update(identity, session.previous_page())
        return Navigation.MOVED

    def cancel(self, identity: str) -> None:
        """Remove an identity's session. Does nothing if there is none."""
        self._sessions.pop(identity, None)

    def select(self, identity: str, number: int) -> SelectableItem:
        """
        Get the item at a 1-based selection number.

        The session is left in place; callers remove it once done.

        Raises:
            NoActiveSessionError: If the identity has no session.
            OutOfRangeError: If number is outside 1..len(items).
        """
        session = self.get(identity)
        if session is None:
            raise NoActiveSessionError(f"No active session for {identity}")

        item = session.item_at(number)
        if item is None:
            raise OutOfRangeError(number, len(session.items))
        return item

    def cleanup_expired(self) -> int:
        """
        Remove expired sessions.

        Returns:
            Number of sessions removed.
        """
        now = time.time()
        expired = [
            identity
            for identity, entry in self._sessions.items()
            if self._is_expired(entry, now)
        ]

        for identity in expired:
            del self._sessions[identity]

        return len(expired)

    def session_count(self) -> int:
        """Get the number of stored sessions."""
        return len(self._sessions)

    def _update(self, identity: str, session: Session) -> None:
        self._sessions[identity] = SessionEntry(session=session, last_access=time.time())

    def _is_expired(self, entry: SessionEntry, now: float) -> bool:
        return self._timeout > 0 and now - entry.last_access > self._timeout
