"""Authorization policy derived from the bot settings."""

from dataclasses import dataclass

from ..interfaces import Settings


@dataclass(frozen=True)
class Access:
    """What an identity is allowed to do."""

    is_owner: bool = False
    is_admin: bool = False

    @property
    def is_authorized(self) -> bool:
        """Owners and admins may run the tagging commands."""
        return self.is_owner or self.is_admin


def authorize(identity: str, settings: Settings) -> Access:
    """Compute the access level of an identity against a settings snapshot."""
    return Access(
        is_owner=settings.owner is not None and identity == settings.owner,
        is_admin=identity in settings.admins,
    )
