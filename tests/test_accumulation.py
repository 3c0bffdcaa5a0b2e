"""
Unit tests for the accumulation engine.

Tests cover:
- NEW / NEXT / DEEP transitions
- Deduplication and idempotent merge
- Exhaustion detection
- Deep scan early stop and failure resilience
- Stale results after a newer search
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from conftest import FakeIndexClient, make_index, make_summary
from shared.accumulation import AccumulationEngine, ScanState
from shared.errors import MissingCredentialError, UpstreamQueryError
from shared.fireflies import TranscriptIndexClient


def assert_no_duplicates(state: ScanState):
    ids = state.ids
    assert len(ids) == len(set(ids))


class TestNew:
    async def test_first_page_replaces_state(self, session):
        client = FakeIndexClient(make_index(50, 50, 10))
        engine = AccumulationEngine(client)

        state = await engine.new(session, "budget")

        assert state.ids == [f"t{i}" for i in range(50)]
        assert state.cursor == 0
        assert state.scanned_count == 50
        assert state.exhausted is False
        assert client.calls == [{"keyword": "budget", "skip": 0}]

    async def test_new_resets_previous_scan(self, session):
        engine = AccumulationEngine(FakeIndexClient(make_index(50, 50, 50)))
        await engine.new(session)
        await engine.next(session)

        state = await engine.new(session, "other")

        assert len(state.accumulated) == 50
        assert state.cursor == 0
        assert state.scanned_count == 50
        assert state.keyword == "other"

    async def test_missing_key_surfaces_distinctly(self, keyless_session):
        engine = AccumulationEngine(FakeIndexClient(make_index(10)))

        with pytest.raises(MissingCredentialError) as exc:
            await engine.new(keyless_session, "budget")

        assert exc.value.provider == "fireflies"


class TestExhaustion:
    async def test_short_page_sets_exhausted(self, session):
        engine = AccumulationEngine(FakeIndexClient(make_index(49)))
        state = await engine.new(session)
        assert state.exhausted is True

    async def test_full_page_is_not_exhausted(self, session):
        engine = AccumulationEngine(FakeIndexClient(make_index(50)))
        state = await engine.new(session)
        assert state.exhausted is False

    async def test_empty_next_page_after_exact_multiple(self, session):
        engine = AccumulationEngine(FakeIndexClient(make_index(50)))
        await engine.new(session)
        state = await engine.next(session)
        assert state.exhausted is True
        assert len(state.accumulated) == 50


class TestNext:
    async def test_next_appends_and_advances(self, session):
        client = FakeIndexClient(make_index(50, 50, 20))
        engine = AccumulationEngine(client)
        await engine.new(session)

        state = await engine.next(session)

        assert len(state.accumulated) == 100
        assert state.cursor == 50
        assert state.scanned_count == 100
        assert client.calls[-1]["skip"] == 50

    async def test_next_dedups_overlapping_pages(self, session):
        # Remote index shifted by one item between calls: page 2 repeats t49
        items = make_index(50) + [make_summary(49)] + [make_summary(i) for i in range(50, 99)]
        engine = AccumulationEngine(FakeIndexClient(items))
        await engine.new(session)

        state = await engine.next(session)

        assert_no_duplicates(state)
        assert len(state.accumulated) == 99
        assert state.ids[49] == "t49"

    async def test_next_on_fresh_state_starts_at_zero(self, session):
        client = FakeIndexClient(make_index(50, 50))
        engine = AccumulationEngine(client)

        await engine.next(session)

        assert client.calls[0]["skip"] == 0

    async def test_failed_next_leaves_state_unchanged(self, session):
        engine = AccumulationEngine(FakeIndexClient(make_index(50, 50), fail_on={2}))
        await engine.new(session)

        with pytest.raises(UpstreamQueryError):
            await engine.next(session)

        assert engine.state.cursor == 0
        assert len(engine.state.accumulated) == 50
        assert engine.state.scanned_count == 50

    async def test_replaying_next_is_idempotent(self, session):
        engine = AccumulationEngine(FakeIndexClient(make_index(50, 50, 50)))
        await engine.new(session)
        await engine.next(session)
        ids_after_first = engine.state.ids
        cursor_after_first = engine.state.cursor

        await engine.replay(session)

        assert engine.state.ids == ids_after_first
        assert engine.state.cursor == cursor_after_first

    def test_merge_twice_adds_nothing(self):
        state = ScanState()
        page = [make_summary(i) for i in range(5)]

        assert state.merge(page) == 5
        assert state.merge(page) == 0
        assert state.ids == [f"t{i}" for i in range(5)]


class TestDeep:
    async def test_stops_at_partial_page(self, session):
        client = FakeIndexClient(make_index(50, 50, 50, 17))
        engine = AccumulationEngine(client)

        state = await engine.deep(session, batches=10)

        assert len(client.calls) == 4
        assert [c["skip"] for c in client.calls] == [0, 50, 100, 150]
        assert state.exhausted is True
        assert len(state.accumulated) == 167
        assert state.cursor == 150

    async def test_after_new_continues_from_cursor(self, session):
        client = FakeIndexClient(make_index(50, 50, 50, 17))
        engine = AccumulationEngine(client)
        await engine.new(session)

        state = await engine.deep(session, batches=10)

        assert [c["skip"] for c in client.calls] == [0, 50, 100, 150]
        assert state.scanned_count == 200
        assert_no_duplicates(state)

    async def test_respects_batch_limit(self, session):
        client = FakeIndexClient(make_index(*([50] * 20)))
        engine = AccumulationEngine(client)
        await engine.new(session)

        state = await engine.deep(session, batches=3)

        assert len(client.calls) == 4
        assert state.exhausted is False
        assert state.cursor == 150
        assert state.scanned_count == 200

    async def test_failure_keeps_partial_progress(self, session):
        client = FakeIndexClient(make_index(*([50] * 10)), fail_on={2})
        engine = AccumulationEngine(client)

        state = await engine.deep(session, batches=10)

        assert len(client.calls) == 2
        assert state.ids == [f"t{i}" for i in range(50)]
        assert state.exhausted is False
        assert state.scanned_count == 50

    async def test_malformed_page_keeps_partial_progress(self, session):
        async def execute(http, api_key, query, variables):
            if variables["skip"] == 0:
                rows = [{"id": f"t{i}", "title": f"Meeting {i}"} for i in range(50)]
            else:
                rows = [{"title": "no id"} for _ in range(50)]
            return {"transcripts": rows}

        client = TranscriptIndexClient(http_session=object())
        client._execute = AsyncMock(side_effect=execute)
        engine = AccumulationEngine(client)

        state = await engine.deep(session, batches=10)

        assert client._execute.call_count == 2
        assert state.ids == [f"t{i}" for i in range(50)]
        assert state.exhausted is False
        assert state.scanned_count == 50

    async def test_missing_key_propagates(self, keyless_session):
        engine = AccumulationEngine(FakeIndexClient(make_index(50)))

        with pytest.raises(MissingCredentialError):
            await engine.deep(keyless_session)

    async def test_reports_progress_per_batch(self, session):
        engine = AccumulationEngine(FakeIndexClient(make_index(50, 50, 5)))
        await engine.new(session)
        progress = []

        await engine.deep(session, batches=10, on_progress=progress.append)

        assert [p.batch for p in progress] == [1, 2]
        assert [p.accumulated for p in progress] == [100, 105]
        assert progress[0].describe() == "Scanning... batch 1 of 10"

    async def test_empty_final_page_does_not_count_as_scanned(self, session):
        engine = AccumulationEngine(FakeIndexClient(make_index(50, 50)))
        await engine.new(session)

        state = await engine.deep(session, batches=10)

        assert state.exhausted is True
        assert state.scanned_count == 100

    async def test_mixed_sequence_never_duplicates(self, session):
        items = make_index(50, 50, 50, 30)
        engine = AccumulationEngine(FakeIndexClient(items))

        await engine.new(session)
        await engine.next(session)
        await engine.replay(session)
        await engine.deep(session, batches=2)
        await engine.deep(session, batches=2)

        assert_no_duplicates(engine.state)
        assert len(engine.state.accumulated) == 180


class TestStaleResults:
    async def test_new_during_deep_discards_stale_pages(self, session):
        release = asyncio.Event()

        class SlowClient(FakeIndexClient):
            async def search_page(self, session, keyword=None, skip=0, page_size=50):
                if keyword == "old" and skip > 0:
                    await release.wait()
                return await super().search_page(session, keyword, skip, page_size)

        engine = AccumulationEngine(SlowClient(make_index(50, 50, 50)))
        await engine.new(session, "old")

        deep_task = asyncio.create_task(engine.deep(session, batches=5))
        await asyncio.sleep(0)
        await engine.new(session, "new")
        release.set()
        state = await deep_task

        assert state.keyword == "new"
        assert len(state.accumulated) == 50
        assert state.cursor == 0
        assert state.scanned_count == 50


class TestScanState:
    def test_oldest_date_is_last_item(self):
        from datetime import datetime, timezone

        older = datetime(2024, 1, 1, tzinfo=timezone.utc)
        state = ScanState()
        state.merge([
            make_summary(1, date=datetime(2024, 6, 1, tzinfo=timezone.utc)),
            make_summary(2, date=older),
        ])

        assert state.oldest_date == older

    def test_oldest_date_empty(self):
        assert ScanState().oldest_date is None
