"""
Request handlers behind the HTTP routes in function_app.py.

Each handler authenticates the bearer token, resolves the caller's stored
credentials into a SessionContext and calls one core operation. Status codes:
- 401: session token failed verification
- 400: missing configuration (API key absent or rejected) or malformed request
- 500: {"error": ...} for every other failure
"""

import json
import logging
import traceback
from typing import Optional

import azure.functions as func

from .credentials import CredentialStore
from .errors import DistillError, MissingCredentialError, UpstreamAuthError
from .fireflies import PAGE_SIZE, TranscriptIndexClient
from .identity import IdentityVerifier
from .models import ConversationTurn, ProviderChoice
from .router import ModelRouter
from .session import SessionContext

logger = logging.getLogger(__name__)


class BadRequest(ValueError):
    """Malformed request body."""


def json_response(payload: dict, status_code: int = 200) -> func.HttpResponse:
    return func.HttpResponse(
        json.dumps(payload),
        status_code=status_code,
        mimetype="application/json",
    )


def error_response(message: str, status_code: int) -> func.HttpResponse:
    return json_response({"error": message}, status_code=status_code)


def _get_body(req: func.HttpRequest) -> dict:
    try:
        body = req.get_json()
    except ValueError:
        raise BadRequest("Request body must be JSON") from None
    if not isinstance(body, dict):
        raise BadRequest("Request body must be a JSON object")
    return body


async def authenticate(
    req: func.HttpRequest,
    verifier: IdentityVerifier,
    store: CredentialStore,
) -> Optional[SessionContext]:
    """Return the caller's SessionContext, or None if the token is invalid."""
    try:
        identity = await verifier.verify(req.headers.get("Authorization"))
    except UpstreamAuthError:
        return None
    return await store.load_session(identity.user_id, identity.email)


def _map_error(e: Exception, operation: str) -> func.HttpResponse:
    if isinstance(e, BadRequest):
        return error_response(str(e), 400)
    if isinstance(e, MissingCredentialError):
        return error_response(str(e), 400)
    if isinstance(e, UpstreamAuthError):
        return error_response(f"{e}. Please check your API Key in Settings.", 400)
    if isinstance(e, DistillError):
        logger.error(f"Error in {operation}: {type(e).__name__}: {e}")
        return error_response(str(e), 500)

    tb = traceback.format_exc()
    logger.error(f"Unhandled error in {operation}: {e}\n{tb}")
    return error_response("Internal Server Error", 500)


async def handle_search(
    req: func.HttpRequest,
    verifier: IdentityVerifier,
    store: CredentialStore,
    index_client: TranscriptIndexClient,
) -> func.HttpResponse:
    """
    Request body:
    {
        "searchQuery": "budget review",   // or an email, or ""
        "skip": 0
    }

    Response:
    {
        "transcripts": [...],
        "hasMore": true
    }
    """
    try:
        session = await authenticate(req, verifier, store)
        if session is None:
            return error_response("Unauthorized", 401)

        body = _get_body(req)
        search_query = body.get("searchQuery") or ""
        skip = body.get("skip", 0)

        if not isinstance(search_query, str):
            raise BadRequest("'searchQuery' must be a string")
        if isinstance(skip, bool) or not isinstance(skip, int) or skip < 0:
            raise BadRequest("'skip' must be a non-negative integer")

        page = await index_client.search_page(
            session, keyword=search_query, skip=skip, page_size=PAGE_SIZE
        )

        return json_response({
            "transcripts": [t.to_dict() for t in page.items],
            "hasMore": page.page_was_full,
        })

    except Exception as e:
        return _map_error(e, "search")


async def handle_batch_fetch(
    req: func.HttpRequest,
    verifier: IdentityVerifier,
    store: CredentialStore,
    index_client: TranscriptIndexClient,
) -> func.HttpResponse:
    """
    Request body:
    {
        "ids": ["abc123", "def456"]
    }

    Response:
    {
        "transcripts": [...],
        "failedIds": ["def456"]
    }
    """
    try:
        session = await authenticate(req, verifier, store)
        if session is None:
            return error_response("Unauthorized", 401)

        body = _get_body(req)
        ids = body.get("ids")
        if not isinstance(ids, list) or not all(isinstance(i, str) and i for i in ids):
            raise BadRequest("'ids' must be a list of transcript ids")

        batch = await index_client.fetch_batch(session, ids)
        return json_response(batch.to_dict())

    except Exception as e:
        return _map_error(e, "batch_fetch")


async def handle_chat(
    req: func.HttpRequest,
    verifier: IdentityVerifier,
    store: CredentialStore,
    router: ModelRouter,
) -> func.HttpResponse:
    """
    Request body:
    {
        "messages": [{"role": "user", "content": "What did we decide?"}],
        "context": "Meeting: ...",
        "model": "gemini"   // or "openai"
    }

    Response:
    {
        "content": "..."
    }
    """
    try:
        session = await authenticate(req, verifier, store)
        if session is None:
            return error_response("Unauthorized", 401)

        body = _get_body(req)
        raw_messages = body.get("messages")
        context = body.get("context") or ""

        if not isinstance(raw_messages, list) or not raw_messages:
            raise BadRequest("'messages' must be a non-empty list")
        if not isinstance(context, str):
            raise BadRequest("'context' must be a string")

        try:
            history = [ConversationTurn.from_dict(m) for m in raw_messages]
            provider = ProviderChoice.parse(body.get("model") or ProviderChoice.GEMINI.value)
        except (ValueError, AttributeError) as e:
            raise BadRequest(str(e)) from None

        if not any(turn.role == "user" for turn in history):
            raise BadRequest("'messages' must contain a user message")

        reply = await router.ask(session, history, context, provider)
        return json_response({"content": reply.content})

    except Exception as e:
        return _map_error(e, "chat")
