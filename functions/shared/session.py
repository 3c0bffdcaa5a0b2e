"""
Per-request identity and resolved credentials.

A SessionContext is built once per request (or per CLI run) and passed
into every core operation, so nothing below the HTTP layer reads ambient
auth state.
"""

from dataclasses import dataclass
from typing import Optional

from .errors import MissingCredentialError
from .models import ProviderChoice

FIREFLIES = "fireflies"


@dataclass(frozen=True)
class SessionContext:
    """Authenticated user plus the third-party keys stored for them."""
    user_id: str
    email: Optional[str] = None
    fireflies_key: Optional[str] = None
    openai_key: Optional[str] = None
    gemini_key: Optional[str] = None

    @classmethod
    def from_settings(
        cls,
        user_id: str,
        settings: Optional[dict],
        email: Optional[str] = None,
    ) -> "SessionContext":
        """Build from a stored settings record (columns as saved by the settings page)."""
        settings = settings or {}
        return cls(
            user_id=user_id,
            email=email,
            fireflies_key=settings.get("fireflies_key") or None,
            openai_key=settings.get("openai_key") or None,
            gemini_key=settings.get("gemini_key") or None,
        )

    def key_for(self, provider) -> Optional[str]:
        if provider == FIREFLIES:
            return self.fireflies_key
        if provider == ProviderChoice.OPENAI:
            return self.openai_key
        if provider == ProviderChoice.GEMINI:
            return self.gemini_key
        raise ValueError(f"Unknown provider: {provider!r}")

    def require_key(self, provider) -> str:
        """Return the key for a provider or raise MissingCredentialError."""
        key = self.key_for(provider)
        if not key:
            name = provider.value if isinstance(provider, ProviderChoice) else provider
            raise MissingCredentialError(name)
        return key
