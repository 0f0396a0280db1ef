"""Session state for the interactive group selection flow."""

import math
from dataclasses import dataclass, field

# Number of items shown per page
PAGE_SIZE = 15


@dataclass(frozen=True)
class SelectableItem:
    """An item the user can pick from a session (a group)."""

    id: str
    label: str


def sort_items(items: list[SelectableItem]) -> list[SelectableItem]:
    """Sort items for display, alphabetically by label."""
    return sorted(items, key=lambda item: (item.label.casefold(), item.label))


@dataclass(frozen=True)
class Session:
    """Per-identity selection state (immutable).

    Pages are 1-based. Selection numbers are global 1-based indexes into
    ``items``, independent of the current page.
    """

    owner: str
    items: tuple[SelectableItem, ...] = field(default_factory=tuple)
    page: int = 1
    page_size: int = PAGE_SIZE

    def __init__(
        self,
        owner: str,
        items: list[SelectableItem] | tuple[SelectableItem, ...] | None = None,
        page: int = 1,
        page_size: int = PAGE_SIZE,
    ):
        if page_size < 1:
            raise ValueError(f"page_size must be >= 1, got {page_size}")
        object.__setattr__(self, "owner", owner)
        object.__setattr__(self, "items", tuple(items) if items else ())
        object.__setattr__(self, "page", page)
        object.__setattr__(self, "page_size", page_size)

    def total_pages(self) -> int:
        """Get total number of pages."""
        return math.ceil(len(self.items) / self.page_size)

    def has_next(self) -> bool:
        """Check if there is a page after the current one."""
        return self.page < self.total_pages()

    def has_previous(self) -> bool:
        """Check if there is a page before the current one."""
        return self.page > 1

    def next_page(self) -> "Session":
        """Return new session advanced one page (unchanged on the last page)."""
        if not self.has_next():
            return self
        return Session(self.owner, self.items, self.page + 1, self.page_size)

    def previous_page(self) -> "Session":
        """Return new session moved back one page (unchanged on page 1)."""
        if not self.has_previous():
            return self
        return Session(self.owner, self.items, self.page - 1, self.page_size)

    def window(self) -> tuple[int, int]:
        """Get the [start, end) item indexes shown on the current page."""
        start = (self.page - 1) * self.page_size
        end = min(start + self.page_size, len(self.items))
        return start, end

    def page_items(self) -> list[tuple[int, SelectableItem]]:
        """Get (global 1-based number, item) pairs for the current page."""
        start, end = self.window()
        return [(i + 1, self.items[i]) for i in range(start, end)]

    def item_at(self, number: int) -> SelectableItem | None:
        """
        Get item at 1-based global number.

        Returns None if number is out of range.
        """
        if number < 1 or number > len(self.items):
            return None
        return self.items[number - 1]
