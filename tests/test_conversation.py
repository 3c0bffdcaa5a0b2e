"""Unit tests for the conversation loop and the workbench session."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import FakeIndexClient, make_index
from shared.context import assemble
from shared.conversation import Conversation, ConversationStatus
from shared.errors import MissingCredentialError, ProviderCallError
from shared.models import BatchFetchResult, ConversationTurn, ProviderChoice
from shared.router import GeminiProvider, ModelRouter
from shared.session import SessionContext
from shared.workflow import SearchSession, WorkbenchSession


@pytest.fixture
def router():
    router = MagicMock(spec=ModelRouter)
    router.ask = AsyncMock(return_value=ConversationTurn(role="assistant", content="Answer."))
    return router


class TestConversation:
    async def test_send_appends_both_turns(self, router, session):
        conversation = Conversation(router, session, "ctx", ProviderChoice.OPENAI)

        reply = await conversation.send("What happened?")

        assert reply.content == "Answer."
        assert conversation.turns == [
            ConversationTurn(role="user", content="What happened?"),
            ConversationTurn(role="assistant", content="Answer."),
        ]
        assert conversation.status is ConversationStatus.IDLE
        router.ask.assert_awaited_once_with(
            session,
            [ConversationTurn(role="user", content="What happened?")],
            "ctx",
            ProviderChoice.OPENAI,
        )

    async def test_history_grows_across_sends(self, router, session):
        conversation = Conversation(router, session, "ctx")

        await conversation.send("First?")
        await conversation.send("Second?")

        history = router.ask.call_args.args[1]
        assert [t.content for t in history] == ["First?", "Answer.", "Second?"]

    async def test_blank_input_ignored(self, router, session):
        conversation = Conversation(router, session, "ctx")

        assert await conversation.send("   ") is None
        assert conversation.turns == []
        router.ask.assert_not_called()

    async def test_missing_key_becomes_error_turn(self, session):
        conversation = Conversation(ModelRouter(), SessionContext(user_id="u"), "ctx")

        reply = await conversation.send("Hello?")

        assert reply.role == "assistant"
        assert reply.content.startswith("Error: No gemini API Key found")
        assert len(conversation.turns) == 2
        assert conversation.status is ConversationStatus.IDLE

    async def test_provider_failure_becomes_error_turn(self, router, session):
        router.ask.side_effect = ProviderCallError("openai", RuntimeError("timeout"))
        conversation = Conversation(router, session, "ctx", ProviderChoice.OPENAI)

        reply = await conversation.send("Hello?")

        assert reply.content == "Error: openai request failed: timeout"

        router.ask.side_effect = None
        reply = await conversation.send("Again?")
        assert reply.content == "Answer."
        assert len(conversation.turns) == 4

    async def test_unregistered_provider_adds_no_turn(self, session):
        router = ModelRouter([GeminiProvider()])
        conversation = Conversation(router, session, "ctx", ProviderChoice.OPENAI)

        with pytest.raises(ValueError):
            await conversation.send("Hello?")

        assert conversation.turns == []
        assert conversation.status is ConversationStatus.IDLE

    async def test_send_while_awaiting_reply(self, router, session):
        conversation = Conversation(router, session, "ctx")
        conversation.status = ConversationStatus.AWAITING_REPLY

        with pytest.raises(RuntimeError):
            await conversation.send("Hello?")


class TestWorkbench:
    async def test_open_workbench_fetches_selection(self, router, session, details):
        index = FakeIndexClient(make_index(3))
        index.fetch_batch = AsyncMock(
            return_value=BatchFetchResult(transcripts=details, failed_ids=["t2"])
        )
        search = SearchSession(session, index)
        await search.new_search()
        search.selection.toggle("t1")
        search.selection.toggle("t0")

        workbench = await search.open_workbench(router, provider=ProviderChoice.OPENAI)

        index.fetch_batch.assert_awaited_once_with(session, ["t1", "t0"])
        assert workbench.context == assemble(details)
        assert workbench.failed_ids == ["t2"]
        assert workbench.provider is ProviderChoice.OPENAI
        assert workbench.get_transcript("b").title == "Roadmap sync"

    async def test_open_workbench_requires_selection(self, router, session):
        search = SearchSession(session, FakeIndexClient(make_index(3)))
        await search.new_search()

        with pytest.raises(ValueError):
            await search.open_workbench(router)

    async def test_switching_provider_between_questions(self, router, session, details):
        workbench = WorkbenchSession(session, details, router)

        await workbench.ask("One?")
        workbench.provider = ProviderChoice.OPENAI
        await workbench.ask("Two?")

        providers = [call.args[3] for call in router.ask.call_args_list]
        assert providers == [ProviderChoice.GEMINI, ProviderChoice.OPENAI]

    async def test_search_missing_key(self, keyless_session):
        search = SearchSession(keyless_session, FakeIndexClient(make_index(3)))

        with pytest.raises(MissingCredentialError):
            await search.new_search("x")
