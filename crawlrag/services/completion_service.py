"""Answer synthesis via a PydanticAI agent."""

from typing import Protocol

import logfire
from pydantic_ai import Agent

from crawlrag.config import get_settings
from crawlrag.errors import ProviderFailure

ANSWER_SYSTEM_PROMPT = (
    "You answer questions using only the context supplied with each question. "
    "Be concise and factual. If the context does not contain the answer, "
    "say that you do not have enough information."
)


class CompletionProvider(Protocol):
    """Turns a prompt into an answer."""

    async def complete(self, prompt: str) -> str: ...


class PydanticAICompleter:
    """CompletionProvider backed by a PydanticAI ``Agent`` with text output."""

    def __init__(self, model: str | None = None, system_prompt: str = ANSWER_SYSTEM_PROMPT):
        """
        Args:
            model: Model string (e.g. 'gateway/anthropic:claude-3-5-sonnet-latest').
                   Defaults to settings.completion_model
            system_prompt: Instructions given to the model for every answer
        """
        self._model = model or get_settings().completion_model
        self.agent = Agent(
            self._model,
            output_type=str,
            system_prompt=system_prompt,
            retries=2,
            defer_model_check=True,
        )

    @property
    def model(self) -> str:
        return self._model

    async def complete(self, prompt: str) -> str:
        """Raises ProviderFailure when the agent run fails."""
        try:
            with logfire.span(
                "completion_generate", model=self._model, prompt_length=len(prompt)
            ):
                result = await self.agent.run(prompt)
        except Exception as e:
            logfire.error(
                "Completion request failed",
                model=self._model,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise ProviderFailure(f"Completion with {self._model} failed: {e}") from e
        return str(result.output).strip()
