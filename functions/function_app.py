"""
Azure Functions HTTP endpoints for Distill.

Endpoints:
- POST /api/search - One page (50) of transcript summaries for a keyword or email
- POST /api/transcripts/batch - Full transcripts for selected ids
- POST /api/chat - Ask the selected model about the assembled transcript context
- GET /api/health - Health check

All POST endpoints require "Authorization: Bearer <session token>". Third-party
API keys are looked up server-side for the authenticated user.
"""

import json
import logging
import azure.functions as func

from shared.credentials import CredentialStore
from shared.fireflies import TranscriptIndexClient
from shared.handlers import handle_batch_fetch, handle_chat, handle_search
from shared.identity import IdentityVerifier
from shared.router import ModelRouter

app = func.FunctionApp(http_auth_level=func.AuthLevel.ANONYMOUS)

# Shared clients (lazy loaded)
_verifier = None
_credential_store = None
_index_client = None
_router = None


def get_verifier() -> IdentityVerifier:
    """Lazy load the identity verifier."""
    global _verifier
    if _verifier is None:
        _verifier = IdentityVerifier()
    return _verifier


def get_credential_store() -> CredentialStore:
    """Lazy load the credential store."""
    global _credential_store
    if _credential_store is None:
        _credential_store = CredentialStore()
    return _credential_store


def get_index_client() -> TranscriptIndexClient:
    """Lazy load the Fireflies client."""
    global _index_client
    if _index_client is None:
        _index_client = TranscriptIndexClient()
    return _index_client


def get_router() -> ModelRouter:
    """Lazy load the model router."""
    global _router
    if _router is None:
        logging.info("Initializing model router")
        _router = ModelRouter()
    return _router


@app.route(route="health", methods=["GET"])
def health_check(req: func.HttpRequest) -> func.HttpResponse:
    """Health check endpoint."""
    return func.HttpResponse(
        json.dumps({"status": "healthy", "service": "distill"}),
        mimetype="application/json",
    )


@app.route(route="search", methods=["POST"])
async def search_transcripts(req: func.HttpRequest) -> func.HttpResponse:
    """Search one page of the caller's transcript archive."""
    return await handle_search(
        req, get_verifier(), get_credential_store(), get_index_client()
    )


@app.route(route="transcripts/batch", methods=["POST"])
async def batch_fetch(req: func.HttpRequest) -> func.HttpResponse:
    """Fetch full transcripts for the selected ids."""
    return await handle_batch_fetch(
        req, get_verifier(), get_credential_store(), get_index_client()
    )


@app.route(route="chat", methods=["POST"])
async def chat(req: func.HttpRequest) -> func.HttpResponse:
    """Answer a question about the supplied transcript context."""
    return await handle_chat(
        req, get_verifier(), get_credential_store(), get_router()
    )
