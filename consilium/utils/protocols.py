"""
Shared Protocol definitions for type hints across the codebase.

These protocols define the interfaces the engine expects from its
external collaborators (specialists, reward sinks, LLM clients), allowing
for dependency injection and testing.
"""

from typing import Mapping, Optional, Protocol, runtime_checkable

from consilium.models.case import Case
from consilium.models.llm import LLMResponse
from consilium.models.opinion import SpecialistOpinion
from consilium.models.outcome import OutcomeSignal


@runtime_checkable
class SpecialistPort(Protocol):
    """
    Protocol for an opinion-producing specialist.

    The engine treats every specialist as an implementation of this
    interface regardless of its internal logic.
    """

    specialist_id: str
    domain: str

    async def consult(
        self,
        case: Case,
        prior_answers: Mapping[str, SpecialistOpinion],
        deadline: float,
    ) -> SpecialistOpinion:
        """
        Produce an opinion for the case.

        Args:
            case: The immutable case under consultation
            prior_answers: Read-only snapshot of opinions recorded before fan-out
            deadline: Absolute event-loop time (``loop.time()``) to answer by

        Returns:
            SpecialistOpinion with status ``success``; failures are raised
        """
        ...

    def confidence(self, case: Case) -> float:
        """Self-reported confidence (0..1) for handling this case."""
        ...


class RewardSink(Protocol):
    """Fire-and-forget receiver of outcome events."""

    def emit_outcome(self, specialist_id: str, outcome_signal: OutcomeSignal) -> None:
        ...


class LLMClientProtocol(Protocol):
    """
    Protocol defining the interface for LLM clients.

    Used to type-hint LLM client dependencies without coupling to a
    specific implementation.
    """

    async def complete(
        self,
        model: str,
        messages: list[dict],
        temperature: float,
        max_tokens: Optional[int] = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        """
        Complete a chat conversation with the LLM.

        Args:
            model: Model identifier (e.g., "anthropic/claude-sonnet-4")
            messages: List of message dicts with "role" and "content"
            temperature: Sampling temperature
            max_tokens: Optional maximum tokens to generate
            json_mode: Request a JSON object response

        Returns:
            LLMResponse with content and token usage
        """
        ...

    def get_session_usage(self) -> dict:
        """Get token usage statistics for the current session."""
        ...
