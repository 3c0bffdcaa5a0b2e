"""
Fireflies.ai transcript index client.

Wraps the GraphQL API with two operations:
- search_page: one page of transcript summaries, optionally keyword or email filtered
- fetch_batch: full sentence-level transcripts for a list of ids, fetched concurrently

Keywords containing "@" are treated as email filters: they are never sent to
Fireflies, and the returned page is filtered locally against organizer and
attendee fields instead.
"""

import os
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import aiohttp

from .errors import NetworkError, UpstreamAuthError, UpstreamQueryError
from .models import BatchFetchResult, SearchPage, TranscriptDetail, TranscriptSummary
from .session import FIREFLIES, SessionContext

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "https://api.fireflies.ai/graphql"
PAGE_SIZE = 50

# GraphQL error codes Fireflies uses for a bad or revoked API key
AUTH_ERROR_CODES = {"UNAUTHENTICATED", "FORBIDDEN", "invalid_api_key", "forbidden"}

SUMMARY_FIELDS = """
      id
      title
      date
      organizer_email
      meeting_attendees {
        email
        displayName
      }
"""

DETAIL_QUERY = """
query GetTranscript($id: String!) {
  transcript(id: $id) {
    id
    title
    date
    organizer_email
    meeting_attendees {
      email
      displayName
    }
    sentences {
      index
      speaker_name
      text
    }
  }
}
"""


def is_email_filter(keyword: Optional[str]) -> bool:
    """A search term containing '@' filters by participant email instead of keyword."""
    return bool(keyword) and "@" in keyword


def matches_email_filter(summary: TranscriptSummary, term: str) -> bool:
    """Case-insensitive substring match against organizer and attendee fields."""
    term = term.lower()

    if summary.organizer_email and term in summary.organizer_email.lower():
        return True

    for attendee in summary.attendees:
        if attendee.email and term in attendee.email.lower():
            return True
        if attendee.display_name and term in attendee.display_name.lower():
            return True

    return False


def build_search_request(
    keyword: Optional[str],
    skip: int,
    page_size: int = PAGE_SIZE,
) -> tuple[str, dict]:
    """
    Build the GraphQL search query and its variables.

    The keyword argument is only declared when a non-email keyword is present.

    Returns:
        Tuple of (query, variables)
    """
    variables = {"limit": page_size, "skip": skip}
    declarations = ["$limit: Int", "$skip: Int"]
    arguments = ["limit: $limit", "skip: $skip"]

    if keyword and not is_email_filter(keyword):
        variables["keyword"] = keyword
        declarations.append("$keyword: String")
        arguments.append("keyword: $keyword")

    query = (
        f"query Transcripts({', '.join(declarations)}) {{\n"
        f"  transcripts({', '.join(arguments)}) {{{SUMMARY_FIELDS}  }}\n"
        f"}}\n"
    )
    return query, variables


class TranscriptIndexClient:
    """
    Async client for the Fireflies transcript index.

    Usage:
        client = TranscriptIndexClient()
        page = await client.search_page(session, keyword="budget review", skip=0)
        batch = await client.fetch_batch(session, ["id1", "id2"])
    """

    def __init__(
        self,
        endpoint: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        http_session: Optional[aiohttp.ClientSession] = None,
    ):
        """
        Initialize the client.

        Args:
            endpoint: GraphQL endpoint (uses FIREFLIES_ENDPOINT env var if not provided)
            timeout_seconds: Total timeout per request (uses FIREFLIES_TIMEOUT_SECONDS, default 60)
            http_session: Shared aiohttp session; a short-lived one is opened per call if omitted
        """
        self.endpoint = endpoint or os.environ.get("FIREFLIES_ENDPOINT", DEFAULT_ENDPOINT)
        self.timeout_seconds = timeout_seconds or float(
            os.environ.get("FIREFLIES_TIMEOUT_SECONDS", "60")
        )
        self._http_session = http_session

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[aiohttp.ClientSession]:
        if self._http_session is not None:
            yield self._http_session
            return

        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        async with aiohttp.ClientSession(timeout=timeout) as http:
            yield http

    async def search_page(
        self,
        session: SessionContext,
        keyword: Optional[str] = None,
        skip: int = 0,
        page_size: int = PAGE_SIZE,
    ) -> SearchPage:
        """
        Fetch one page of transcript summaries.

        Args:
            session: Caller identity and credentials
            keyword: Remote keyword, or an email filter if it contains "@"
            skip: Offset into the remote index
            page_size: Page size (fixed at 50 by the HTTP surface)

        Returns:
            SearchPage with (filtered) items and whether the raw page was full

        Raises:
            MissingCredentialError: No Fireflies key stored
            UpstreamAuthError: Fireflies rejected the key
            UpstreamQueryError: Fireflies reported an error
            NetworkError: Transport failure
        """
        api_key = session.require_key(FIREFLIES)
        keyword = (keyword or "").strip() or None
        query, variables = build_search_request(keyword, skip, page_size)

        logger.info(f"Fireflies search: skip={skip} limit={page_size} keyword={variables.get('keyword')!r}")

        async with self._session() as http:
            data = await self._execute(http, api_key, query, variables)

        rows = data.get("transcripts") or []
        try:
            items = [TranscriptSummary.from_api(row) for row in rows]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.error(f"Malformed Fireflies search page at skip={skip}: {type(e).__name__}: {e}")
            raise UpstreamQueryError(f"Fireflies returned a malformed transcript list: {e!r}") from e

        if is_email_filter(keyword):
            items = [t for t in items if matches_email_filter(t, keyword)]

        return SearchPage(
            items=items,
            page_was_full=len(rows) >= page_size,
            raw_count=len(rows),
        )

    async def fetch_batch(
        self,
        session: SessionContext,
        ids: list[str],
    ) -> BatchFetchResult:
        """
        Fetch full transcripts for the given ids, all requests in flight at once.

        A failed id is left out of the transcripts and reported in failed_ids;
        per-id failures never raise.

        Raises:
            MissingCredentialError: No Fireflies key stored
        """
        api_key = session.require_key(FIREFLIES)
        unique_ids = list(dict.fromkeys(ids))

        if not unique_ids:
            return BatchFetchResult()

        async with self._session() as http:
            results = await asyncio.gather(
                *(self._fetch_one(http, api_key, tid) for tid in unique_ids),
                return_exceptions=True,
            )

        batch = BatchFetchResult()
        for tid, result in zip(unique_ids, results):
            if isinstance(result, Exception):
                logger.warning(f"Failed to fetch transcript {tid}: {type(result).__name__}: {result}")
                batch.failed_ids.append(tid)
            elif isinstance(result, BaseException):
                raise result
            elif result is None:
                logger.warning(f"Transcript {tid} not found")
                batch.failed_ids.append(tid)
            else:
                batch.transcripts.append(result)

        logger.info(
            f"Batch fetch: {len(batch.transcripts)} of {len(unique_ids)} transcripts loaded"
        )
        return batch

    async def _fetch_one(
        self,
        http: aiohttp.ClientSession,
        api_key: str,
        transcript_id: str,
    ) -> Optional[TranscriptDetail]:
        data = await self._execute(http, api_key, DETAIL_QUERY, {"id": transcript_id})
        row = data.get("transcript")
        return TranscriptDetail.from_api(row) if row else None

    async def _execute(
        self,
        http: aiohttp.ClientSession,
        api_key: str,
        query: str,
        variables: dict,
    ) -> dict:
        """POST a GraphQL request and return its data object."""
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key}",
        }

        try:
            async with http.post(
                self.endpoint,
                headers=headers,
                json={"query": query, "variables": variables},
            ) as response:
                if response.status in (401, 403):
                    raise UpstreamAuthError("Fireflies rejected the stored API key")
                try:
                    payload = await response.json(content_type=None)
                except ValueError:
                    text = await response.text()
                    raise UpstreamQueryError(
                        f"Fireflies returned HTTP {response.status}: {text[:200]}"
                    ) from None
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NetworkError(f"Fireflies request failed: {type(e).__name__}: {e}") from e

        payload = payload or {}
        if not isinstance(payload, dict):
            raise UpstreamQueryError(
                f"Fireflies returned HTTP {response.status} with a non-object body"
            )

        errors = payload.get("errors")
        if errors:
            first = errors[0] if isinstance(errors, list) else errors
            if not isinstance(first, dict):
                first = {"message": str(first)}
            code = (first.get("extensions") or {}).get("code")
            message = first.get("message") or "Unknown Fireflies error"
            logger.error(f"Fireflies API error: {message} (code={code})")
            if code in AUTH_ERROR_CODES:
                raise UpstreamAuthError(message)
            raise UpstreamQueryError(message)

        if response.status >= 400:
            raise UpstreamQueryError(f"Fireflies returned HTTP {response.status}")

        data = payload.get("data") or {}
        if not isinstance(data, dict):
            raise UpstreamQueryError("Fireflies returned a non-object data field")
        return data
