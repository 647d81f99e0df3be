"""Guardrail result schemas."""

import enum

from pydantic import Field

from mostrador.schemas.common import BaseSchema


class GuardrailStage(str, enum.Enum):
    """Which side of the pipeline is validated."""

    INPUT = "input"
    OUTPUT = "output"


class GuardrailCheckKind(str, enum.Enum):
    """Individual guardrail checks."""

    PII = "pii"
    TOXICITY = "toxicity"
    PROMPT_INJECTION = "prompt_injection"
    BUSINESS_RULES = "business_rules"
    TONE = "tone"
    RELEVANCE = "relevance"


class GuardrailCheck(BaseSchema):
    """Outcome of a single check."""

    kind: GuardrailCheckKind
    passed: bool
    message: str | None = None
    score: float | None = None


class GuardrailResult(BaseSchema):
    """Aggregate guardrail decision.

    ``sanitized_content`` and ``pii_metadata`` are only set when the PII
    check masked something; masking alone never makes ``allowed`` false.
    """

    allowed: bool
    checks: list[GuardrailCheck] = Field(default_factory=list)
    sanitized_content: str | None = None
    pii_metadata: dict[str, str] | None = None

    @property
    def failed_checks(self) -> list[GuardrailCheck]:
        return [c for c in self.checks if not c.passed]
