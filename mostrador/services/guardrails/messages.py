"""Customer-facing fallback messages shown when a guardrail blocks a turn.

Messages are keyed by stage and by the first failed check. Diagnostics from
the checks themselves are never shown to the customer.
"""

from mostrador.schemas.guardrail import GuardrailCheck, GuardrailCheckKind, GuardrailStage

GENERIC_KEY = "generic"

FALLBACK_MESSAGES: dict[GuardrailStage, dict[str, str]] = {
    GuardrailStage.INPUT: {
        GuardrailCheckKind.PII.value: (
            "Por tu seguridad, evitá compartir datos sensibles como números de tarjeta. "
            "¿En qué más te puedo ayudar?"
        ),
        GuardrailCheckKind.TOXICITY.value: (
            "Queremos ayudarte, pero necesitamos mantener una conversación respetuosa. "
            "¿Podés contarnos de nuevo qué necesitás?"
        ),
        GuardrailCheckKind.PROMPT_INJECTION.value: (
            "No puedo procesar ese mensaje. Contame en qué te puedo ayudar con tu pedido "
            "o con nuestros productos."
        ),
        GuardrailCheckKind.BUSINESS_RULES.value: (
            "Tu mensaje es demasiado largo o está vacío. ¿Podés resumir tu consulta?"
        ),
        GENERIC_KEY: "No pude procesar tu mensaje. ¿Podés reformularlo?",
    },
    GuardrailStage.OUTPUT: {
        GuardrailCheckKind.PII.value: (
            "Tuvimos un problema al preparar la respuesta. Un momento, por favor."
        ),
        GuardrailCheckKind.TOXICITY.value: (
            "Tuvimos un problema al preparar la respuesta. ¿Podés repetir tu consulta?"
        ),
        GuardrailCheckKind.BUSINESS_RULES.value: (
            "La respuesta quedó demasiado extensa. ¿Podés hacer una consulta más puntual?"
        ),
        GuardrailCheckKind.TONE.value: (
            "Disculpá, no pude generar una respuesta adecuada. ¿Podés repetir tu consulta?"
        ),
        GuardrailCheckKind.RELEVANCE.value: (
            "Disculpá, no estoy seguro de haber entendido. ¿Podés darme más detalles?"
        ),
        GENERIC_KEY: "Disculpá, tuvimos un inconveniente. ¿Podés intentar de nuevo?",
    },
}


def get_fallback_message(stage: GuardrailStage, checks: list[GuardrailCheck]) -> str:
    """Pick the fallback for the first failed check, or the stage's generic one."""
    messages = FALLBACK_MESSAGES[stage]
    failed = next((c for c in checks if not c.passed), None)
    if failed is None:
        return messages[GENERIC_KEY]
    return messages.get(failed.kind.value, messages[GENERIC_KEY])
