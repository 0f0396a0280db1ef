"""Bot settings and the abstract interface for persisting them."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Iterable

from ..errors import AlreadyExistsError, NotFoundError


@dataclass(frozen=True)
class Settings:
    """Owner and admin identities (immutable).

    The owner can be claimed once and is never reassigned.
    """

    owner: str | None = None
    admins: frozenset[str] = field(default_factory=frozenset)

    def __init__(self, owner: str | None = None, admins: Iterable[str] | None = None):
        object.__setattr__(self, "owner", owner)
        object.__setattr__(self, "admins", frozenset(admins) if admins else frozenset())

    def with_owner(self, identity: str) -> "Settings":
        """Return settings with the owner set.

        Raises:
            AlreadyExistsError: If an owner is already set.
        """
        if self.owner is not None:
            raise AlreadyExistsError("An owner has already been set")
        return Settings(owner=identity, admins=self.admins)

    def with_admin(self, identity: str) -> "Settings":
        """Return settings with an admin added.

        Raises:
            AlreadyExistsError: If the identity is already an admin.
        """
        if identity in self.admins:
            raise AlreadyExistsError(f"{identity} is already an admin")
        return Settings(owner=self.owner, admins=self.admins | {identity})

    def without_admin(self, identity: str) -> "Settings":
        """Return settings with an admin removed.

        Raises:
            NotFoundError: If the identity is not an admin.
        """
        if identity not in self.admins:
            raise NotFoundError(f"{identity} is not an admin")
        return Settings(owner=self.owner, admins=self.admins - {identity})


class SettingsStore(ABC):
    """Abstract interface for loading and saving settings."""

    @abstractmethod
    def load(self) -> Settings:
        """Load settings, returning empty settings if none are stored."""
        pass

    @abstractmethod
    def save(self, settings: Settings) -> bool:
        """Persist settings. Returns False if they could not be saved."""
        pass
