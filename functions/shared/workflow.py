"""
Search-and-select and workbench sessions.

SearchSession owns one scan and its selection; opening the workbench
fetches the selected transcripts once and hands them to a WorkbenchSession,
which owns the conversation about them.
"""

import logging
from typing import Callable, Optional

from .accumulation import DEFAULT_DEEP_BATCHES, AccumulationEngine, ScanProgress, ScanState
from .context import ContextAssembler
from .conversation import Conversation
from .fireflies import TranscriptIndexClient
from .models import ConversationTurn, ProviderChoice, TranscriptDetail
from .router import ModelRouter
from .selection import SelectionSet
from .session import SessionContext

logger = logging.getLogger(__name__)


class SearchSession:
    """
    Usage:
        search = SearchSession(session, TranscriptIndexClient())
        await search.new_search("alice@example.com")
        await search.deep_scan()
        search.selection.select_all()
        workbench = await search.open_workbench(ModelRouter())
    """

    def __init__(
        self,
        session: SessionContext,
        index_client: TranscriptIndexClient,
        engine: Optional[AccumulationEngine] = None,
    ):
        self.session = session
        self.index_client = index_client
        self.engine = engine or AccumulationEngine(index_client)
        self.selection = SelectionSet(self.engine.state)

    @property
    def state(self) -> ScanState:
        return self.engine.state

    async def new_search(self, keyword: Optional[str] = None) -> ScanState:
        self.selection.clear()
        return await self.engine.new(self.session, keyword)

    async def next_page(self) -> ScanState:
        return await self.engine.next(self.session)

    async def deep_scan(
        self,
        batches: int = DEFAULT_DEEP_BATCHES,
        on_progress: Optional[Callable[[ScanProgress], None]] = None,
    ) -> ScanState:
        return await self.engine.deep(self.session, batches=batches, on_progress=on_progress)

    async def open_workbench(
        self,
        router: ModelRouter,
        provider: ProviderChoice = ProviderChoice.GEMINI,
        assembler: Optional[ContextAssembler] = None,
    ) -> "WorkbenchSession":
        """Fetch full content for the selection and start a workbench."""
        ids = self.selection.ids
        if not ids:
            raise ValueError("No transcripts selected")

        batch = await self.index_client.fetch_batch(self.session, ids)
        return WorkbenchSession(
            session=self.session,
            transcripts=batch.transcripts,
            router=router,
            provider=provider,
            assembler=assembler,
            failed_ids=batch.failed_ids,
        )


class WorkbenchSession:
    """Fetched transcripts (read-only) plus one conversation about them."""

    def __init__(
        self,
        session: SessionContext,
        transcripts: list[TranscriptDetail],
        router: ModelRouter,
        provider: ProviderChoice = ProviderChoice.GEMINI,
        assembler: Optional[ContextAssembler] = None,
        failed_ids: Optional[list[str]] = None,
    ):
        self.transcripts = tuple(transcripts)
        self.failed_ids = list(failed_ids or [])
        self.assembler = assembler or ContextAssembler()
        self.context = self.assembler.assemble(list(self.transcripts))
        self.conversation = Conversation(router, session, self.context, provider)

        if self.failed_ids:
            logger.warning(f"Workbench opened without {len(self.failed_ids)} transcripts: {self.failed_ids}")

    @property
    def provider(self) -> ProviderChoice:
        return self.conversation.provider

    @provider.setter
    def provider(self, value: ProviderChoice) -> None:
        self.conversation.provider = value

    def get_transcript(self, transcript_id: str) -> Optional[TranscriptDetail]:
        return next((t for t in self.transcripts if t.id == transcript_id), None)

    async def ask(self, text: str) -> Optional[ConversationTurn]:
        return await self.conversation.send(text)
