"""
Model router: sends transcript context plus conversation history to the
selected LLM vendor and normalizes the reply into an assistant turn.

Providers:
- OpenAI: multi-turn, the full history is resubmitted after a system turn
- Gemini: single-shot, only the latest user question is sent with the instructions
"""

import os
import logging
from abc import ABC, abstractmethod
from typing import Optional

from litellm import acompletion
from openai import AsyncOpenAI

from .errors import DistillError, ProviderCallError
from .models import ConversationTurn, ProviderChoice
from .session import SessionContext

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are an expert meeting analyst.
Answer the user's question based ONLY on the following meeting transcripts.
If the transcripts do not contain the answer, say so.

TRANSCRIPTS:
{context}"""


def build_system_prompt(context: str) -> str:
    return SYSTEM_PROMPT.format(context=context)


def last_user_message(history: list[ConversationTurn]) -> str:
    for turn in reversed(history):
        if turn.role == "user":
            return turn.content
    raise ValueError("Conversation has no user message")


class ModelProvider(ABC):
    """One LLM vendor. Subclasses implement complete()."""

    choice: ProviderChoice

    def __init__(self, model: Optional[str] = None):
        self.model = model

    @abstractmethod
    async def complete(
        self,
        api_key: str,
        history: list[ConversationTurn],
        context: str,
    ) -> str:
        """Return the reply text. Vendor exceptions propagate unchanged."""


class OpenAIProvider(ModelProvider):
    choice = ProviderChoice.OPENAI

    def __init__(self, model: Optional[str] = None):
        super().__init__(model or os.environ.get("OPENAI_MODEL", "gpt-4o"))

    async def complete(self, api_key, history, context):
        messages = [{"role": "system", "content": build_system_prompt(context)}]
        messages.extend(turn.to_dict() for turn in history)

        async with AsyncOpenAI(api_key=api_key) as client:
            response = await client.chat.completions.create(
                model=self.model,
                messages=messages,
            )
        return response.choices[0].message.content or ""


class GeminiProvider(ModelProvider):
    choice = ProviderChoice.GEMINI

    def __init__(self, model: Optional[str] = None):
        super().__init__(model or os.environ.get("GEMINI_MODEL", "gemini-2.5-flash"))

    async def complete(self, api_key, history, context):
        # Single-shot: earlier turns are not resubmitted
        prompt = f"{build_system_prompt(context)}\n\nUser Question: {last_user_message(history)}"

        response = await acompletion(
            model=f"gemini/{self.model}",
            messages=[{"role": "user", "content": prompt}],
            api_key=api_key,
        )
        return response.choices[0].message.content or ""


DEFAULT_PROVIDERS = (GeminiProvider, OpenAIProvider)


class ModelRouter:
    """
    Dispatches a conversation to the provider named by a ProviderChoice.

    Usage:
        router = ModelRouter()
        reply = await router.ask(session, history, context, ProviderChoice.GEMINI)
    """

    def __init__(self, providers: Optional[list[ModelProvider]] = None):
        if providers is None:
            providers = [cls() for cls in DEFAULT_PROVIDERS]
        self.providers = {p.choice: p for p in providers}

    def supports(self, provider: ProviderChoice) -> bool:
        return provider in self.providers

    async def ask(
        self,
        session: SessionContext,
        history: list[ConversationTurn],
        context: str,
        provider: ProviderChoice,
    ) -> ConversationTurn:
        """
        Get an assistant reply.

        Raises:
            MissingCredentialError: No key stored for the provider (checked before any call)
            ProviderCallError: The vendor call failed
            ValueError: History has no user message
        """
        backend = self.providers.get(provider)
        if backend is None:
            raise ValueError(f"No backend registered for provider {provider!r}")

        api_key = session.require_key(provider)
        last_user_message(history)

        logger.info(f"Routing chat to {provider.value} ({backend.model}), {len(history)} turns")

        try:
            content = await backend.complete(api_key, history, context)
        except DistillError:
            raise
        except Exception as e:
            logger.error(f"{provider.value} call failed: {type(e).__name__}: {e}")
            raise ProviderCallError(provider.value, e) from e

        return ConversationTurn(role="assistant", content=content)
