"""Shared modules for Distill."""

from .accumulation import AccumulationEngine, ScanProgress, ScanState
from .context import ContextAssembler, assemble
from .conversation import Conversation
from .fireflies import TranscriptIndexClient
from .models import ConversationTurn, ProviderChoice, TranscriptDetail, TranscriptSummary
from .router import ModelRouter
from .selection import SelectionSet
from .session import SessionContext
from .workflow import SearchSession, WorkbenchSession

__all__ = [
    "AccumulationEngine",
    "ScanProgress",
    "ScanState",
    "ContextAssembler",
    "assemble",
    "Conversation",
    "TranscriptIndexClient",
    "ConversationTurn",
    "ProviderChoice",
    "TranscriptDetail",
    "TranscriptSummary",
    "ModelRouter",
    "SelectionSet",
    "SessionContext",
    "SearchSession",
    "WorkbenchSession",
]
