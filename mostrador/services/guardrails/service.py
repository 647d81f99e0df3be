"""Guardrail gate for inbound customer messages and outbound replies."""

import logging
from typing import Any

from langchain_openai import ChatOpenAI
from openai import AsyncOpenAI

from mostrador.core.config import settings
from mostrador.schemas.ai import MessageContext
from mostrador.schemas.guardrail import GuardrailCheck, GuardrailResult
from mostrador.services.guardrails.checks import (
    ProfessionalToneGuardrail,
    ResponseRelevanceGuardrail,
    ToxicityGuardrail,
    check_business_rules,
    check_pii,
    check_prompt_injection,
)
from mostrador.services.pii import PIIMetadata, mask

logger = logging.getLogger(__name__)


class GuardrailService:
    """Runs ordered guardrail checks and aggregates the decision.

    Input checks: pii, prompt_injection, toxicity, business_rules.
    Output checks: pii, toxicity, business_rules, tone, relevance.
    """

    def __init__(
        self,
        moderation_client: AsyncOpenAI | None = None,
        llm: Any | None = None,
    ) -> None:
        check_llm = llm or ChatOpenAI(
            model=settings.guardrail_model,
            api_key=settings.openai_api_key,
            temperature=0.0,
            max_tokens=150,
        )
        self.toxicity = ToxicityGuardrail(moderation_client)
        self.tone = ProfessionalToneGuardrail(check_llm)
        self.relevance = ResponseRelevanceGuardrail(check_llm)

    async def validate_input(self, text: str, context: MessageContext) -> GuardrailResult:
        """Validate a customer message before any handler sees it."""
        checks: list[GuardrailCheck] = []
        sanitized: str | None = None
        metadata: PIIMetadata | None = None

        if settings.guardrail_enable_pii_check:
            pii_check, masked = check_pii(text)
            checks.append(pii_check)
            if masked.has_pii:
                sanitized, metadata = masked.sanitized, masked.metadata

        if settings.guardrail_enable_injection_check:
            checks.append(check_prompt_injection(text))

        if settings.guardrail_enable_toxicity_check:
            checks.append(await self.toxicity.check(sanitized or text))

        if settings.guardrail_enable_business_rules:
            checks.append(check_business_rules(text, settings.guardrail_max_input_length))

        return self._result(checks, sanitized, metadata, stage="input", context=context)

    async def validate_output(
        self,
        text: str,
        context: MessageContext,
        pii_metadata: PIIMetadata | None = None,
    ) -> GuardrailResult:
        """Validate a handler reply before it is persisted or sent.

        ``pii_metadata`` from the input stage seeds output masking so values the
        customer already shared keep their placeholder.
        """
        checks: list[GuardrailCheck] = []
        sanitized: str | None = None
        metadata: PIIMetadata | None = None

        if settings.guardrail_enable_pii_check:
            pii_check, masked = check_pii(text, existing=pii_metadata)
            checks.append(pii_check)
            if masked.sanitized != text:
                sanitized, metadata = masked.sanitized, masked.metadata

        if settings.guardrail_enable_toxicity_check:
            checks.append(await self.toxicity.check(sanitized or text))

        if settings.guardrail_enable_business_rules:
            checks.append(check_business_rules(text, settings.guardrail_max_output_length))

        if settings.guardrail_enable_tone_check:
            checks.append(await self.tone.check(sanitized or text))

        if settings.guardrail_enable_relevance_check:
            # Stored turns plus the current customer message
            history = context.history[-(settings.relevance_history_turns + 1) :]
            checks.append(await self.relevance.check(sanitized or text, history))

        return self._result(checks, sanitized, metadata, stage="output", context=context)

    def sanitize(self, text: str) -> str:
        """Return ``text`` with PII masked."""
        return mask(text).sanitized

    def _result(
        self,
        checks: list[GuardrailCheck],
        sanitized: str | None,
        metadata: PIIMetadata | None,
        *,
        stage: str,
        context: MessageContext,
    ) -> GuardrailResult:
        result = GuardrailResult(
            allowed=all(c.passed for c in checks),
            checks=checks,
            sanitized_content=sanitized,
            pii_metadata=metadata,
        )
        if not result.allowed:
            logger.warning(
                "Guardrail %s validation failed for conversation %s: %s",
                stage,
                context.conversation_id,
                [c.kind.value for c in result.failed_checks],
            )
        return result
