"""Page renderer for the group selection menu."""

import math

from .session import SelectableItem, Session


class PageRenderer:
    """Renders one page of a selection list as a numbered menu."""

    TITLE = "Hidden Mention"
    PROMPT = "Select a group:"
    FOOTER = (
        "Reply with a number to select.\n"
        "Type *'n'* for next, *'p'* for previous, or *'c'* to cancel."
    )

    def render(self, session: Session) -> str:
        """Render the session's current page."""
        return self.render_page(session.items, session.page, session.page_size)

    def render_page(
        self,
        items: list[SelectableItem] | tuple[SelectableItem, ...],
        page: int,
        page_size: int,
    ) -> str:
        """
        Render a page of items.

        Items are numbered by their global 1-based position in the list,
        so the numbers stay valid as selections on any page.

        Args:
            items: All items, in display order.
            page: 1-based page number.
            page_size: Items per page.

        Returns:
            Formatted menu string.

        Raises:
            ValueError: If page is outside 1..total pages.
        """
        if not items:
            return "(no groups)"

        total = math.ceil(len(items) / page_size)
        if page < 1 or page > total:
            raise ValueError(f"Page {page} is outside 1..{total}")

        start = (page - 1) * page_size
        page_items = items[start:start + page_size]

        lines = [f"*{self.TITLE} - Page {page}/{total}*", "", self.PROMPT, ""]
        for number, item in enumerate(page_items, start + 1):
            lines.append(f"{number}. {item.label}")
        lines.append("")
        lines.append(self.FOOTER)

        return "\n".join(lines)
