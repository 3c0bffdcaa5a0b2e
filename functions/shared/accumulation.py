"""
Search accumulation engine.

Walks the externally paginated transcript index and merges pages into a
duplicate-free working set. Three transitions, driven by the user:

- NEW:  reset and fetch the first page
- NEXT: fetch the page after the cursor and merge it
- DEEP: repeat NEXT up to N times, stopping at the first short page or failed fetch

Pages are always fetched sequentially; each offset depends on the previous
page's outcome.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from .errors import DistillError, MissingCredentialError
from .fireflies import PAGE_SIZE, TranscriptIndexClient
from .models import SearchPage, TranscriptSummary
from .session import SessionContext

logger = logging.getLogger(__name__)

DEFAULT_DEEP_BATCHES = 10


@dataclass
class ScanState:
    """Position and results of one search-and-accumulate workflow."""
    accumulated: list[TranscriptSummary] = field(default_factory=list)
    cursor: int = 0
    exhausted: bool = False
    scanned_count: int = 0
    started: bool = False
    generation: int = 0
    keyword: Optional[str] = None

    @property
    def ids(self) -> list[str]:
        return [t.id for t in self.accumulated]

    @property
    def oldest_date(self) -> Optional[datetime]:
        """Date of the last accumulated transcript, i.e. how far back the scan reached."""
        if not self.accumulated:
            return None
        return self.accumulated[-1].date

    def reset(self, keyword: Optional[str]) -> None:
        self.accumulated = []
        self.cursor = 0
        self.exhausted = False
        self.scanned_count = 0
        self.started = False
        self.generation += 1
        self.keyword = keyword

    def merge(self, items: list[TranscriptSummary]) -> int:
        """
        Append items whose id is not yet present, in page order.

        Returns:
            Number of newly added items
        """
        seen = {t.id for t in self.accumulated}
        added = 0
        for item in items:
            if item.id not in seen:
                self.accumulated.append(item)
                seen.add(item.id)
                added += 1
        return added


@dataclass
class ScanProgress:
    """Snapshot reported after each deep-scan batch."""
    batch: int
    batches: int
    accumulated: int
    scanned: int

    def describe(self) -> str:
        return f"Scanning... batch {self.batch} of {self.batches}"


class AccumulationEngine:
    """
    State machine over a ScanState.

    Usage:
        engine = AccumulationEngine(TranscriptIndexClient())
        await engine.new(session, "budget review")
        await engine.deep(session, batches=10)
        for t in engine.state.accumulated:
            print(t.title)
    """

    def __init__(
        self,
        index_client: TranscriptIndexClient,
        page_size: int = PAGE_SIZE,
        state: Optional[ScanState] = None,
    ):
        self.index_client = index_client
        self.page_size = page_size
        self.state = state or ScanState()

    def _next_offset(self) -> int:
        if not self.state.started:
            return 0
        return self.state.cursor + self.page_size

    async def _fetch(self, session: SessionContext, skip: int) -> SearchPage:
        return await self.index_client.search_page(
            session,
            keyword=self.state.keyword,
            skip=skip,
            page_size=self.page_size,
        )

    async def new(self, session: SessionContext, keyword: Optional[str] = None) -> ScanState:
        """
        Start a brand-new search at offset 0.

        Raises:
            MissingCredentialError: No Fireflies key, so the caller can prompt for one
            DistillError: Any other failure of the first page
        """
        self.state.reset(keyword)
        generation = self.state.generation

        page = await self._fetch(session, 0)

        if generation != self.state.generation:
            logger.info("Discarding stale first page: a newer search started")
            return self.state

        self.state.accumulated = []
        self.state.merge(page.items)
        self.state.cursor = 0
        self.state.started = True
        self.state.exhausted = not page.page_was_full
        self.state.scanned_count = self.page_size

        logger.info(
            f"New search {keyword!r}: {len(self.state.accumulated)} transcripts, "
            f"exhausted={self.state.exhausted}"
        )
        return self.state

    async def next(self, session: SessionContext) -> ScanState:
        """
        Fetch and merge the page after the cursor.

        Raises:
            DistillError: The page could not be fetched; state is left unchanged
        """
        generation = self.state.generation
        skip = self._next_offset()

        page = await self._fetch(session, skip)

        if generation != self.state.generation:
            logger.info(f"Discarding stale page at skip={skip}: a newer search started")
            return self.state

        self._apply_page(page, skip)
        self.state.scanned_count += self.page_size
        return self.state

    async def replay(self, session: SessionContext) -> ScanState:
        """
        Re-fetch the page at the cursor and merge it again.

        Against an unchanged index this is a no-op; new transcripts that
        appeared on that page are appended.
        """
        if not self.state.started:
            return await self.next(session)

        generation = self.state.generation
        skip = self.state.cursor

        page = await self._fetch(session, skip)

        if generation != self.state.generation:
            return self.state

        self._apply_page(page, skip)
        return self.state

    async def deep(
        self,
        session: SessionContext,
        batches: int = DEFAULT_DEEP_BATCHES,
        on_progress: Optional[Callable[[ScanProgress], None]] = None,
    ) -> ScanState:
        """
        Sequentially fetch up to `batches` pages, merging each one immediately.

        Stops early on a short page (exhausted) or a failed fetch (partial
        progress kept, exhausted left as is). Only a missing credential
        propagates.
        """
        generation = self.state.generation

        for batch in range(1, batches + 1):
            skip = self._next_offset()

            try:
                page = await self._fetch(session, skip)
            except MissingCredentialError:
                raise
            except DistillError as e:
                logger.warning(
                    f"Deep scan stopped at batch {batch} of {batches} (skip={skip}): {e}"
                )
                break

            if generation != self.state.generation:
                logger.info("Deep scan abandoned: a newer search started")
                break

            self._apply_page(page, skip)
            if page.raw_count > 0:
                self.state.scanned_count += self.page_size

            if on_progress:
                on_progress(ScanProgress(
                    batch=batch,
                    batches=batches,
                    accumulated=len(self.state.accumulated),
                    scanned=self.state.scanned_count,
                ))

            if not page.page_was_full:
                break

        logger.info(
            f"Deep scan finished: {len(self.state.accumulated)} transcripts, "
            f"cursor={self.state.cursor}, exhausted={self.state.exhausted}"
        )
        return self.state

    def _apply_page(self, page: SearchPage, skip: int) -> None:
        added = self.state.merge(page.items)
        self.state.cursor = skip
        self.state.started = True
        self.state.exhausted = not page.page_was_full
        logger.debug(f"Merged page skip={skip}: {added} new of {len(page.items)}")
