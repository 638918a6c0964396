"""
Cursor-based pagination over the content service.

Every paginated operation shares one rule: an empty page ends the
sequence, otherwise the next cursor is the id of the page's last record.
Pages for one key accumulate into a single ``InfiniteData`` value. The
service is assumed to return records in a stable order between calls;
duplicates caused by writes landing mid-pagination are not detected.
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterator, List, Optional

from ..domain.records import Page

Cursor = Optional[str]
PageFetcher = Callable[[Cursor], Awaitable[Page]]


def next_cursor(page: Optional[Page]) -> Cursor:
    """Cursor for the page after ``page``; None when there is none."""
    if page is None or page.is_exhausted:
        return None
    return page.documents[-1].id


@dataclass(frozen=True)
class InfiniteData:
    """Pages accumulated for one key, with the cursor each was fetched at."""

    pages: List[Page] = field(default_factory=list)
    page_params: List[Cursor] = field(default_factory=list)

    @property
    def last_page(self) -> Optional[Page]:
        return self.pages[-1] if self.pages else None

    @property
    def has_next_page(self) -> bool:
        return next_cursor(self.last_page) is not None

    def records(self) -> Iterator[Any]:
        for page in self.pages:
            yield from page.documents

    def append(self, page: Page, cursor: Cursor) -> "InfiniteData":
        return InfiniteData(
            pages=[*self.pages, page],
            page_params=[*self.page_params, cursor],
        )


async def fetch_first_page(fetch_page: PageFetcher) -> InfiniteData:
    """Start a sequence over from its first page."""
    page = await fetch_page(None)
    return InfiniteData(pages=[page], page_params=[None])


async def fetch_following_page(data: InfiniteData, fetch_page: PageFetcher) -> InfiniteData:
    """Fetch the single page after ``data`` and return the extended sequence.

    Returns ``data`` unchanged, without a request, once the sequence ended.
    """
    if not data.pages:
        return await fetch_first_page(fetch_page)
    cursor = next_cursor(data.last_page)
    if cursor is None:
        return data
    page = await fetch_page(cursor)
    return data.append(page, cursor)
