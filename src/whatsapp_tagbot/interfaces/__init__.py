"""Abstract interfaces for the WhatsApp tag bot."""

from .messaging_gateway import GroupMetadata, InboundMessage, MessagingGateway
from .settings_store import Settings, SettingsStore

__all__ = ["GroupMetadata", "InboundMessage", "MessagingGateway", "Settings", "SettingsStore"]
