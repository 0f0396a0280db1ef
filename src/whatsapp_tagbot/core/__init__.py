"""Core components for the WhatsApp tag bot."""

from .authorization import Access, authorize
from .command_parser import (
    CommandParser,
    Command,
    SelectCommand,
    NextCommand,
    PreviousCommand,
    CancelCommand,
    InvalidCommand,
    ClaimOwnerCommand,
    PromoteCommand,
    DemoteCommand,
    TagAllCommand,
    HiddenTagCommand,
)
from .page_renderer import PageRenderer
from .session import PAGE_SIZE, SelectableItem, Session, sort_items
from .session_registry import Navigation, SessionRegistry

__all__ = [
    "Access",
    "authorize",
    "CommandParser",
    "Command",
    "SelectCommand",
    "NextCommand",
    "PreviousCommand",
    "CancelCommand",
    "InvalidCommand",
    "ClaimOwnerCommand",
    "PromoteCommand",
    "DemoteCommand",
    "TagAllCommand",
    "HiddenTagCommand",
    "PageRenderer",
    "PAGE_SIZE",
    "SelectableItem",
    "Session",
    "sort_items",
    "Navigation",
    "SessionRegistry",
]
