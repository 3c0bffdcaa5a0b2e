"""In-memory conversation for one workbench session. Not persisted."""

import logging
from enum import Enum
from typing import Optional

from .errors import DistillError
from .models import ConversationTurn, ProviderChoice
from .router import ModelRouter
from .session import SessionContext

logger = logging.getLogger(__name__)


class ConversationStatus(str, Enum):
    IDLE = "idle"
    AWAITING_REPLY = "awaiting_reply"


class Conversation:
    """
    Append-only list of turns driving the router.

    Failures never abort the conversation: they come back as an assistant
    turn starting with "Error: ".
    """

    def __init__(
        self,
        router: ModelRouter,
        session: SessionContext,
        context: str,
        provider: ProviderChoice = ProviderChoice.GEMINI,
    ):
        self.router = router
        self.session = session
        self.context = context
        self.provider = provider
        self.status = ConversationStatus.IDLE
        self._turns: list[ConversationTurn] = []

    @property
    def turns(self) -> list[ConversationTurn]:
        return list(self._turns)

    async def send(self, text: str) -> Optional[ConversationTurn]:
        """
        Append a user turn and the assistant's reply.

        Returns:
            The assistant turn, or None if the input was blank

        Raises:
            RuntimeError: A reply is still pending
            ValueError: The router has no backend for the provider; no turn is added
        """
        if not text or not text.strip():
            return None

        if self.status is ConversationStatus.AWAITING_REPLY:
            raise RuntimeError("A reply is already pending")

        if not self.router.supports(self.provider):
            raise ValueError(f"No backend registered for provider {self.provider!r}")

        self._turns.append(ConversationTurn(role="user", content=text))
        self.status = ConversationStatus.AWAITING_REPLY

        try:
            reply = await self.router.ask(
                self.session, self.turns, self.context, self.provider
            )
        except DistillError as e:
            logger.warning(f"Chat turn failed: {type(e).__name__}: {e}")
            reply = ConversationTurn(role="assistant", content=f"Error: {e}")
        finally:
            self.status = ConversationStatus.IDLE

        self._turns.append(reply)
        return reply
