"""LLM intent classifier for incoming customer messages."""

import json
import logging
import re
from typing import Any

from langchain_core.messages import HumanMessage
from langchain_openai import ChatOpenAI

from mostrador.core.config import settings
from mostrador.schemas.ai import HistoryTurn, Intent, IntentClassification
from mostrador.services.graph.prompts import INTENT_CLASSIFIER_PROMPT

logger = logging.getLogger(__name__)

# Fallback when the model output cannot be parsed
FALLBACK_INTENT = Intent.OTHERS
FALLBACK_CONFIDENCE = 0.3
CLASSIFIER_HISTORY_TURNS = 4


def strip_code_fences(content: str) -> str:
    """Remove markdown code fences the model sometimes wraps JSON in."""
    content = re.sub(r"^```(?:json)?\s*\n?", "", content.strip())
    return re.sub(r"\n?```\s*$", "", content.strip())


def parse_json_object(content: str) -> dict[str, Any]:
    """Parse an LLM reply that should hold a single JSON object.

    Raises:
        ValueError: If the reply is not a JSON object.
    """
    parsed = json.loads(strip_code_fences(content))
    if not isinstance(parsed, dict):
        raise ValueError("Expected a JSON object")
    return parsed


class IntentClassifier:
    """Classifies a masked customer message into one of the closed intents."""

    def __init__(self, llm: Any | None = None) -> None:
        self.llm = llm or ChatOpenAI(
            model=settings.classifier_model,
            api_key=settings.openai_api_key,
            temperature=0.0,
            max_tokens=150,
        )

    async def classify(
        self,
        message: str,
        history: list[HistoryTurn] | None = None,
    ) -> IntentClassification:
        """Classify ``message``; LLM transport errors propagate to the caller."""
        recent = (history or [])[-CLASSIFIER_HISTORY_TURNS:]
        history_text = "\n".join(f"{t.role}: {t.content}" for t in recent) or "(no previous messages)"

        prompt = INTENT_CLASSIFIER_PROMPT.format(history=history_text, message=message)
        response = await self.llm.ainvoke([HumanMessage(content=prompt)])
        content = response.content if isinstance(response.content, str) else ""

        try:
            parsed = parse_json_object(content)
            intent = Intent(str(parsed.get("intent", "")).upper())
            confidence = float(parsed.get("confidence", 0.5))
            explanation = parsed.get("explanation")
        except (json.JSONDecodeError, ValueError, TypeError):
            logger.warning("Failed to parse intent classifier response: %s", content)
            intent = FALLBACK_INTENT
            confidence = FALLBACK_CONFIDENCE
            explanation = None

        confidence = min(max(confidence, 0.0), 1.0)
        logger.info("Intent classified: intent=%s, confidence=%.2f", intent.value, confidence)
        return IntentClassification(
            intent=intent,
            confidence=confidence,
            explanation=str(explanation) if explanation else None,
        )
