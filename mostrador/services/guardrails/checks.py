"""Individual guardrail checks.

Deterministic checks (PII, prompt injection, business rules) are plain
functions. Checks that call a model are classes holding their client so
they can be swapped in tests.
"""

import asyncio
import logging
import re
from typing import Any

from langchain_core.messages import HumanMessage
from openai import AsyncOpenAI

from mostrador.core.config import settings
from mostrador.schemas.ai import HistoryTurn
from mostrador.schemas.guardrail import GuardrailCheck, GuardrailCheckKind
from mostrador.services.graph.classifier import parse_json_object
from mostrador.services.graph.prompts import RELEVANCE_CHECK_PROMPT, TONE_CHECK_PROMPT
from mostrador.services.pii import MaskResult, PIIMetadata, mask

logger = logging.getLogger(__name__)

PROMPT_INJECTION_PATTERNS: list[re.Pattern[str]] = [
    # Instruction override
    re.compile(
        r"\b(ignore|disregard|forget)\b.{0,30}\b(previous|all|above|prior)\b.{0,30}"
        r"\b(instructions?|prompts?|rules)\b",
        re.IGNORECASE,
    ),
    # Role confusion
    re.compile(r"\byou are now\b", re.IGNORECASE),
    re.compile(r"\bact as\b", re.IGNORECASE),
    re.compile(r"\bpretend (you are|to be)\b", re.IGNORECASE),
    re.compile(r"\broleplay as\b", re.IGNORECASE),
    # System prompt manipulation
    re.compile(r"\bnew instructions?\s*:", re.IGNORECASE),
    re.compile(r"(^|\s)system\s*:", re.IGNORECASE),
    re.compile(r"\[system\]", re.IGNORECASE),
    re.compile(r"<\|system\|>", re.IGNORECASE),
    # Jailbreaks
    re.compile(r"\bDAN\b"),
    re.compile(r"\b(developer|god) mode\b", re.IGNORECASE),
    re.compile(r"\bjailbreak\b", re.IGNORECASE),
]


def check_pii(text: str, existing: PIIMetadata | None = None) -> tuple[GuardrailCheck, MaskResult]:
    """Mask PII; the check always passes because masking is not a rejection."""
    result = mask(text, existing=existing)
    added = len(result.metadata) - len(existing or {})
    if result.sanitized == text:
        return GuardrailCheck(kind=GuardrailCheckKind.PII, passed=True), result
    return (
        GuardrailCheck(
            kind=GuardrailCheckKind.PII,
            passed=True,
            message=f"PII masked with {max(added, 0)} new placeholder(s)",
        ),
        result,
    )


def check_prompt_injection(text: str) -> GuardrailCheck:
    for pattern in PROMPT_INJECTION_PATTERNS:
        if pattern.search(text):
            logger.warning("Prompt injection pattern matched: %s", pattern.pattern)
            return GuardrailCheck(
                kind=GuardrailCheckKind.PROMPT_INJECTION,
                passed=False,
                message="Potential prompt injection detected",
            )
    return GuardrailCheck(kind=GuardrailCheckKind.PROMPT_INJECTION, passed=True)


def check_business_rules(text: str, max_length: int) -> GuardrailCheck:
    if not text.strip():
        return GuardrailCheck(
            kind=GuardrailCheckKind.BUSINESS_RULES,
            passed=False,
            message="Content is empty",
        )
    if len(text) > max_length:
        return GuardrailCheck(
            kind=GuardrailCheckKind.BUSINESS_RULES,
            passed=False,
            message=f"Content exceeds maximum length of {max_length} characters",
        )
    return GuardrailCheck(kind=GuardrailCheckKind.BUSINESS_RULES, passed=True)


def _scores_to_dict(scores: Any) -> dict[str, float]:
    if hasattr(scores, "model_dump"):
        scores = scores.model_dump(by_alias=True)
    return {k: float(v) for k, v in dict(scores or {}).items() if v is not None}


class ToxicityGuardrail:
    """Toxicity check backed by the OpenAI moderation endpoint."""

    def __init__(self, client: AsyncOpenAI | None = None) -> None:
        self.client = client or AsyncOpenAI(api_key=settings.openai_api_key)

    async def check(self, text: str) -> GuardrailCheck:
        try:
            response = await asyncio.wait_for(
                self.client.moderations.create(model=settings.moderation_model, input=text),
                timeout=settings.moderation_timeout_seconds,
            )
        except Exception as e:
            logger.warning("Moderation check failed (%s), fallback=%s", e, settings.moderation_fallback)
            if settings.moderation_fallback == "block":
                return GuardrailCheck(
                    kind=GuardrailCheckKind.TOXICITY,
                    passed=False,
                    message="Moderation unavailable",
                )
            return GuardrailCheck(
                kind=GuardrailCheckKind.TOXICITY,
                passed=True,
                message="Moderation unavailable, allowed by fallback",
            )

        result = response.results[0]
        scores = _scores_to_dict(result.category_scores)
        if not result.flagged:
            return GuardrailCheck(kind=GuardrailCheckKind.TOXICITY, passed=True)

        category, score = max(scores.items(), key=lambda item: item[1], default=("unknown", 0.0))
        return GuardrailCheck(
            kind=GuardrailCheckKind.TOXICITY,
            passed=False,
            message=f"Content flagged for {category}",
            score=score,
        )


class ProfessionalToneGuardrail:
    """LLM check that a reply keeps a professional customer-service tone.

    Fails open: any model or parsing error lets the reply through.
    """

    def __init__(self, llm: Any) -> None:
        self.llm = llm

    async def check(self, response_text: str) -> GuardrailCheck:
        prompt = TONE_CHECK_PROMPT.format(response=response_text)
        try:
            reply = await asyncio.wait_for(
                self.llm.ainvoke([HumanMessage(content=prompt)]),
                timeout=settings.guardrail_llm_timeout_seconds,
            )
            parsed = parse_json_object(reply.content if isinstance(reply.content, str) else "")
        except Exception as e:
            logger.warning("Tone check failed open: %s", e)
            return GuardrailCheck(kind=GuardrailCheckKind.TONE, passed=True, message="Tone check skipped")

        if parsed.get("is_professional", True):
            return GuardrailCheck(kind=GuardrailCheckKind.TONE, passed=True)
        return GuardrailCheck(
            kind=GuardrailCheckKind.TONE,
            passed=False,
            message=str(parsed.get("reason") or "Unprofessional tone"),
        )


class ResponseRelevanceGuardrail:
    """LLM check that a reply addresses what the customer asked."""

    def __init__(self, llm: Any) -> None:
        self.llm = llm

    async def check(self, response_text: str, history: list[HistoryTurn]) -> GuardrailCheck:
        if not history:
            return GuardrailCheck(
                kind=GuardrailCheckKind.RELEVANCE,
                passed=True,
                message="No history to compare against",
            )

        history_text = "\n".join(f"{t.role}: {t.content}" for t in history)
        prompt = RELEVANCE_CHECK_PROMPT.format(history=history_text, response=response_text)
        try:
            reply = await asyncio.wait_for(
                self.llm.ainvoke([HumanMessage(content=prompt)]),
                timeout=settings.guardrail_llm_timeout_seconds,
            )
            parsed = parse_json_object(reply.content if isinstance(reply.content, str) else "")
        except Exception as e:
            logger.warning("Relevance check failed open: %s", e)
            return GuardrailCheck(
                kind=GuardrailCheckKind.RELEVANCE,
                passed=True,
                message="Relevance check skipped",
            )

        if parsed.get("is_relevant", True):
            return GuardrailCheck(kind=GuardrailCheckKind.RELEVANCE, passed=True)
        return GuardrailCheck(
            kind=GuardrailCheckKind.RELEVANCE,
            passed=False,
            message=str(parsed.get("reason") or "Response not relevant"),
        )
