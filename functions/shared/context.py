"""
Context assembly: turns selected transcripts into one prompt-ready text blob.

Each transcript becomes a block:

    Meeting: <title> (<date>)

    <speaker>: <text>
    ...

Blocks are joined with a "---" separator in the order supplied. An optional
token budget drops whole transcripts from the end once the blob would no
longer fit, and says so in a trailing note.
"""

import os
import logging
from datetime import datetime
from typing import Callable, Optional

import tiktoken

from .models import TranscriptDetail

logger = logging.getLogger(__name__)

BLOCK_SEPARATOR = "\n\n---\n\n"
SPEAKER_PLACEHOLDER = "Speaker"
NO_TEXT_PLACEHOLDER = "(No transcript text available)"
UNTITLED = "Untitled meeting"
UNKNOWN_DATE = "unknown date"
DEFAULT_MAX_TOKENS = 200000


def format_date(value: Optional[datetime]) -> str:
    """Short date in the process locale."""
    if value is None:
        return UNKNOWN_DATE
    return value.strftime("%x")


def render_transcript(transcript: TranscriptDetail) -> str:
    """Render a single transcript block."""
    header = f"Meeting: {transcript.title or UNTITLED} ({format_date(transcript.date)})"

    if transcript.sentences:
        body = "\n".join(
            f"{s.speaker_name or SPEAKER_PLACEHOLDER}: {s.text}"
            for s in transcript.sentences
        )
    else:
        body = NO_TEXT_PLACEHOLDER

    return f"{header}\n\n{body}"


class ContextAssembler:
    """
    Builds the transcript context for the model router.

    Usage:
        assembler = ContextAssembler()
        context = assembler.assemble(details)
    """

    def __init__(
        self,
        max_tokens: Optional[int] = -1,
        token_counter: Optional[Callable[[str], int]] = None,
    ):
        """
        Args:
            max_tokens: Token budget; None or 0 disables it, -1 reads CONTEXT_MAX_TOKENS
            token_counter: Function returning the token count of a string (tiktoken cl100k_base by default)
        """
        if max_tokens == -1:
            max_tokens = int(os.environ.get("CONTEXT_MAX_TOKENS", str(DEFAULT_MAX_TOKENS)))
        self.max_tokens = max_tokens or None
        self._token_counter = token_counter
        self._tokenizer = None

    def count_tokens(self, text: str) -> int:
        if self._token_counter is not None:
            return self._token_counter(text)
        if self._tokenizer is None:
            self._tokenizer = tiktoken.get_encoding("cl100k_base")
        return len(self._tokenizer.encode(text))

    def assemble(self, transcripts: list[TranscriptDetail]) -> str:
        blocks = [render_transcript(t) for t in transcripts]

        if self.max_tokens is None:
            return BLOCK_SEPARATOR.join(blocks)

        kept = []
        used = 0
        separator_cost = self.count_tokens(BLOCK_SEPARATOR)

        for block in blocks:
            cost = self.count_tokens(block) + (separator_cost if kept else 0)
            if used + cost > self.max_tokens:
                break
            kept.append(block)
            used += cost

        omitted = len(blocks) - len(kept)
        context = BLOCK_SEPARATOR.join(kept)

        if omitted:
            logger.warning(
                f"Context budget of {self.max_tokens} tokens reached: "
                f"omitting {omitted} of {len(blocks)} transcripts"
            )
            note = (
                f"[Context truncated: {omitted} of {len(blocks)} transcripts omitted "
                f"to fit the model context window]"
            )
            context = f"{context}\n\n{note}" if context else note

        return context


def assemble(transcripts: list[TranscriptDetail]) -> str:
    """Concatenate transcripts with no token budget."""
    return ContextAssembler(max_tokens=None).assemble(transcripts)
