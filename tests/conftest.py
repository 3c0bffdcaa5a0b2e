"""Pytest configuration and shared fixtures."""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "functions"))

from shared.errors import UpstreamQueryError  # noqa: E402
from shared.fireflies import PAGE_SIZE  # noqa: E402
from shared.models import (  # noqa: E402
    Attendee,
    SearchPage,
    Sentence,
    TranscriptDetail,
    TranscriptSummary,
)
from shared.session import SessionContext  # noqa: E402


def make_summary(i: int, **kwargs) -> TranscriptSummary:
    return TranscriptSummary(id=f"t{i}", title=f"Meeting {i}", **kwargs)


def make_index(*page_lengths: int) -> list[TranscriptSummary]:
    """Build a remote index whose pages have the given lengths."""
    total = sum(page_lengths)
    return [make_summary(i) for i in range(total)]


class FakeIndexClient:
    """
    In-memory stand-in for TranscriptIndexClient.search_page.

    Serves slices of `items` by skip; `fail_on` holds 1-based call numbers
    that raise UpstreamQueryError instead.
    """

    def __init__(self, items, page_size=PAGE_SIZE, fail_on=()):
        self.items = list(items)
        self.page_size = page_size
        self.fail_on = set(fail_on)
        self.calls = []

    async def search_page(self, session, keyword=None, skip=0, page_size=PAGE_SIZE):
        session.require_key("fireflies")
        self.calls.append({"keyword": keyword, "skip": skip})
        if len(self.calls) in self.fail_on:
            raise UpstreamQueryError("Too many requests")
        rows = self.items[skip:skip + page_size]
        return SearchPage(items=rows, page_was_full=len(rows) >= page_size, raw_count=len(rows))


@pytest.fixture
def session():
    return SessionContext(
        user_id="user-1",
        email="owner@example.com",
        fireflies_key="ff-key",
        openai_key="sk-openai",
        gemini_key="gm-key",
    )


@pytest.fixture
def keyless_session():
    return SessionContext(user_id="user-2")


@pytest.fixture
def details():
    return [
        TranscriptDetail(
            id="a",
            title="Budget review",
            sentences=(
                Sentence(index=0, speaker_name="Alice", text="We are over budget."),
                Sentence(index=3, speaker_name=None, text="By how much?"),
            ),
        ),
        TranscriptDetail(
            id="b",
            title="Roadmap sync",
            attendees=(Attendee(email="bob@example.com", display_name="Bob"),),
            sentences=(Sentence(index=0, speaker_name="Bob", text="Ship it in May."),),
        ),
    ]


@pytest.fixture(autouse=True)
def no_token_budget(monkeypatch):
    """Keep tiktoken (which downloads its encoding) out of tests that don't set a budget."""
    monkeypatch.setenv("CONTEXT_MAX_TOKENS", "0")
