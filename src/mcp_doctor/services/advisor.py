"""Optional AI repair advisor using LangChain structured output.

The advisor receives helper log text plus the errors already classified
from it and returns a ranked list of :class:`AdvisorSuggestion`.  The
repair planner treats confidence as an ordering hint only; a malformed or
unavailable response surfaces as :class:`AdvisorError` and the planner
falls back to template fixes.

The advisor is constructed explicitly and injected into the planner.
"""

from __future__ import annotations

import concurrent.futures
import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any

from langchain_core.language_models import BaseChatModel
from langchain_core.prompts import ChatPromptTemplate
from pydantic import BaseModel, Field

from mcp_doctor.domain.enums import ErrorKind
from mcp_doctor.domain.exceptions import AdvisorError
from mcp_doctor.domain.values import AdvisorSuggestion, ClassifiedError

logger = logging.getLogger(__name__)


# -- Structured output schemas -----------------------------------------------


class SuggestedFix(BaseModel):
    """A single remediation proposed by the model."""

    type: str = Field(
        description=(
            "Error kind: path_error, env_error, permission_error, config_error, "
            "network_error, process_error or unknown_error"
        )
    )
    description: str = Field(description="What is wrong and what the fix does")
    steps: list[str] = Field(default_factory=list, description="Ordered remediation steps")
    confidence: float = Field(ge=0, le=1, description="Confidence in this fix [0, 1]")


class AdvisorOutput(BaseModel):
    """Full advisor response."""

    suggested_fixes: list[SuggestedFix] = Field(description="Candidate fixes")
    explanation: str = Field(default="", description="Plain-language summary of the issues")


# -- Prompt ------------------------------------------------------------------

_ADVISOR_PROMPT = ChatPromptTemplate.from_messages(
    [
        (
            "system",
            "You are an expert at analyzing MCP server logs and identifying issues. "
            "Suggest concrete fixes for every problem you find, each with the error "
            "kind it addresses, ordered remediation steps and a confidence in [0, 1].",
        ),
        (
            "human",
            "## Log content\n"
            "```\n{log_text}\n```\n\n"
            "## Known errors\n"
            "{known_errors}\n\n"
            "Suggest fixes.",
        ),
    ]
)


# -- Advisors ----------------------------------------------------------------


class BaseRepairAdvisor(ABC):
    """Source of ranked repair suggestions."""

    @abstractmethod
    def suggest(
        self,
        log_text: str,
        known_errors: Sequence[ClassifiedError],
    ) -> list[AdvisorSuggestion]:
        """Return suggestions ordered by descending confidence.

        Raises
        ------
        AdvisorError
            If the advisor is unavailable or its response is malformed.
        """


class StaticRepairAdvisor(BaseRepairAdvisor):
    """Returns a fixed suggestion list (offline runs, tests)."""

    def __init__(self, suggestions: Sequence[AdvisorSuggestion] = ()) -> None:
        self._suggestions = list(suggestions)

    def suggest(
        self,
        log_text: str,
        known_errors: Sequence[ClassifiedError],
    ) -> list[AdvisorSuggestion]:
        return sorted(self._suggestions, key=lambda s: s.confidence, reverse=True)


class LLMRepairAdvisor(BaseRepairAdvisor):
    """Advisor backed by a LangChain chat model.

    Parameters
    ----------
    model:
        A LangChain chat model supporting ``with_structured_output``.
    max_log_chars:
        Log text is truncated to its last *max_log_chars* characters.
    min_confidence:
        Suggestions below this confidence are dropped.
    max_suggestions:
        Upper bound on returned suggestions (``0`` = unlimited).
    prompt:
        Optional custom ``ChatPromptTemplate`` with ``log_text`` and
        ``known_errors`` variables.
    timeout:
        Seconds to wait for the model before giving up.
    """

    def __init__(
        self,
        model: BaseChatModel,
        max_log_chars: int = 20_000,
        min_confidence: float = 0.0,
        max_suggestions: int = 5,
        prompt: ChatPromptTemplate | None = None,
        timeout: float | None = None,
    ) -> None:
        self.model = model
        self.max_log_chars = max_log_chars
        self.min_confidence = min_confidence
        self.max_suggestions = max_suggestions
        self._prompt = prompt or _ADVISOR_PROMPT
        self._timeout = timeout
        self._chain = self._build_chain()

    def _build_chain(self) -> Any:
        structured_model = self.model.with_structured_output(AdvisorOutput)
        return self._prompt | structured_model

    def _invoke_with_timeout(self, inputs: dict[str, Any]) -> Any:
        if self._timeout is None:
            return self._chain.invoke(inputs)
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            future = pool.submit(self._chain.invoke, inputs)
            return future.result(timeout=self._timeout)

    def suggest(
        self,
        log_text: str,
        known_errors: Sequence[ClassifiedError],
    ) -> list[AdvisorSuggestion]:
        inputs = {
            "log_text": log_text[-self.max_log_chars:] if log_text else "(no log output)",
            "known_errors": "\n".join(
                f"- Type: {e.kind.value}, Message: {e.message}" for e in known_errors
            ) or "None",
        }
        try:
            result = self._invoke_with_timeout(inputs)
        except Exception as exc:
            raise AdvisorError(f"Advisor unavailable: {exc}") from exc

        if isinstance(result, dict):
            try:
                result = AdvisorOutput.model_validate(result)
            except ValueError as exc:
                raise AdvisorError(f"Malformed advisor response: {exc}") from exc
        if not isinstance(result, AdvisorOutput):
            raise AdvisorError(
                f"Malformed advisor response of type {type(result).__name__}"
            )

        suggestions = [
            AdvisorSuggestion(
                error_kind=_error_kind(fix.type),
                description=fix.description,
                steps=tuple(fix.steps),
                confidence=fix.confidence,
            )
            for fix in result.suggested_fixes
            if fix.description and fix.confidence >= self.min_confidence
        ]
        suggestions.sort(key=lambda s: s.confidence, reverse=True)
        if self.max_suggestions > 0:
            suggestions = suggestions[: self.max_suggestions]
        logger.debug("Advisor returned %d suggestions", len(suggestions))
        return suggestions


def _error_kind(raw: str) -> ErrorKind:
    try:
        return ErrorKind(raw.strip().lower())
    except ValueError:
        logger.debug("Unknown advisor error kind %r", raw)
        return ErrorKind.UNKNOWN
