"""Abstract base for all reasoning-oracle providers."""

from abc import ABC, abstractmethod

from vulnswarm.models import ModelResponse, Turn


class ProviderError(Exception):
    """Raised when a provider call fails."""

    def __init__(self, provider_name: str, message: str) -> None:
        self.provider_name = provider_name
        super().__init__(f"[{provider_name}] {message}")


class AIProvider(ABC):
    """Abstract base for all AI model providers."""

    @abstractmethod
    def name(self) -> str:
        """Return the short provider name (e.g. 'openai', 'claude')."""
        ...

    @abstractmethod
    def model_string(self) -> str:
        """Return the actual model identifier string."""
        ...

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        *,
        system: str = "",
        history: list[Turn] | None = None,
        temperature: float | None = None,
    ) -> ModelResponse:
        """Generate a response for the given prompt.

        Args:
            prompt: The user prompt for this turn.
            system: System directive for the worker making the call.
            history: Prior (role, content) turns, oldest first.
            temperature: Sampling temperature, or None for the provider default.

        Returns:
            ModelResponse dataclass with content and usage.

        Raises:
            ProviderError: On API failure, timeout, or invalid response.
        """
        ...


def build_messages(prompt: str, history: list[Turn] | None) -> list[dict[str, str]]:
    """Chat-style message list: prior turns followed by the new user prompt."""
    messages = [{"role": t.role, "content": t.content} for t in history or []]
    messages.append({"role": "user", "content": prompt})
    return messages
