"""Decide how much of an already-shown product to repeat.

Strategy:
- new search or explicit re-show: FULL_CARD
- size question about a known product (any age): SIZE_ONLY
- comparison of recently shown products: COMPACT
- attribute question about a recently shown product: TEXT_ONLY

Everything here is pure and driven by an explicit ``now``.
"""

import enum
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from mostrador.core.config import settings
from mostrador.schemas.conversation_state import ProductMention
from mostrador.services.presentation.templates import PRODUCT_TEMPLATES, ProductPresentationMode

logger = logging.getLogger(__name__)

ORDINAL_INDEX = {"primero": 0, "segundo": 1, "tercero": 2}

_ORDINAL = re.compile(r"\b(primero|segundo|tercero)\b", re.IGNORECASE)


class ProductQueryType(str, enum.Enum):
    INITIAL_SEARCH = "INITIAL_SEARCH"
    SIZE_QUERY = "SIZE_QUERY"
    COMPARISON = "COMPARISON"
    ATTRIBUTE_QUERY = "ATTRIBUTE_QUERY"
    RE_SHOW = "RE_SHOW"


def _compile(patterns: list[str]) -> list[re.Pattern[str]]:
    return [re.compile(p, re.IGNORECASE) for p in patterns]


@dataclass
class ProductQueryPatterns:
    """Pattern tables per query family. Swap the instance to change locale."""

    size: list[re.Pattern[str]]
    comparison: list[re.Pattern[str]]
    attribute: list[re.Pattern[str]]
    re_show: list[re.Pattern[str]]

    def ordered(self) -> list[tuple[ProductQueryType, list[re.Pattern[str]]]]:
        """Families in match priority."""
        return [
            (ProductQueryType.SIZE_QUERY, self.size),
            (ProductQueryType.COMPARISON, self.comparison),
            (ProductQueryType.ATTRIBUTE_QUERY, self.attribute),
            (ProductQueryType.RE_SHOW, self.re_show),
        ]


SPANISH_PATTERNS = ProductQueryPatterns(
    size=_compile(
        [
            r"tiene.*talle",
            r"talles.*disponible",
            r"stock.*talle",
            r"qu[eé] talles",
            r"en talle \d+",
            r"viene en (talle|talles)",
        ]
    ),
    comparison=_compile(
        [
            r"diferencia.*entre",
            r"cu[aá]l.*mejor",
            r"comparar",
            r"(primero|segundo|tercero).*(vs|contra|con)",
            r"entre.*y",
        ]
    ),
    attribute=_compile(
        [
            r"viene en (negro|azul|rojo|blanco|gris|verde|rosa|violeta)",
            r"tiene.*bolsillos",
            r"es.*elastizado",
            r"material",
            r"de qu[eé].*est[aá] hecho",
            r"qu[eé] color",
            r"tiene.*cierre",
        ]
    ),
    re_show=_compile(
        [
            r"mostrar.*de nuevo",
            r"ver.*otra vez",
            r"repetir",
            r"volver a mostrar",
        ]
    ),
)


@dataclass
class ProductQueryContext:
    query_type: ProductQueryType
    mentioned: list[ProductMention] = field(default_factory=list)
    is_recent: bool = False


def detect_query_type(
    message: str, patterns: ProductQueryPatterns = SPANISH_PATTERNS
) -> ProductQueryType:
    text = message.lower()
    for query_type, family in patterns.ordered():
        if any(p.search(text) for p in family):
            return query_type
    return ProductQueryType.INITIAL_SEARCH


def find_referenced_products(message: str, products: list[ProductMention]) -> list[ProductMention]:
    """Products the message points at, by name token or by ordinal position."""
    text = message.lower()
    referenced: list[ProductMention] = []
    for product in products:
        tokens = [w for w in product.name.lower().split() if len(w) > 3]
        if any(token in text for token in tokens):
            referenced.append(product)

    ordinal = _ORDINAL.search(message)
    if ordinal:
        index = ORDINAL_INDEX[ordinal.group(1).lower()]
        if index < len(products) and products[index] not in referenced:
            referenced.append(products[index])
    return referenced


def is_recent(mention: ProductMention, now: datetime, window_minutes: int | None = None) -> bool:
    window = timedelta(
        minutes=settings.recent_mention_window_minutes if window_minutes is None else window_minutes
    )
    return now - mention.seen_at <= window


def detect_product_query(
    message: str,
    products: list[ProductMention],
    now: datetime,
    patterns: ProductQueryPatterns = SPANISH_PATTERNS,
) -> ProductQueryContext:
    query_type = detect_query_type(message, patterns)
    mentioned = find_referenced_products(message, products)
    recent = any(is_recent(p, now) for p in mentioned)
    logger.debug(
        "Product query %s, referenced=%s, recent=%s",
        query_type.value,
        [p.product_id for p in mentioned],
        recent,
    )
    return ProductQueryContext(query_type=query_type, mentioned=mentioned, is_recent=recent)


def determine_product_mode(ctx: ProductQueryContext) -> ProductPresentationMode:
    """Pick the presentation mode for a detected query.

    Size questions only need the product to be known; comparisons and
    attribute questions also need it to have been seen recently.
    """
    match ctx.query_type:
        case ProductQueryType.RE_SHOW:
            return ProductPresentationMode.FULL_CARD
        case ProductQueryType.SIZE_QUERY if ctx.mentioned:
            return ProductPresentationMode.SIZE_ONLY
        case ProductQueryType.COMPARISON if ctx.is_recent:
            return ProductPresentationMode.COMPACT
        case ProductQueryType.ATTRIBUTE_QUERY if ctx.is_recent:
            return ProductPresentationMode.TEXT_ONLY
        case _:
            return ProductPresentationMode.FULL_CARD


def format_time_ago(moment: datetime, now: datetime) -> str:
    minutes = int((now - moment).total_seconds() // 60)
    if minutes < 1:
        return "just now"
    if minutes == 1:
        return "1 minute ago"
    if minutes < 60:
        return f"{minutes} minutes ago"
    hours = minutes // 60
    return "1 hour ago" if hours == 1 else f"{hours} hours ago"


def build_product_instructions(
    mode: ProductPresentationMode,
    mentioned: list[ProductMention],
    now: datetime,
) -> str:
    instructions = PRODUCT_TEMPLATES[mode]
    if mode is ProductPresentationMode.FULL_CARD or not mentioned:
        return instructions

    lines = "\n".join(
        f"- **{p.name}** (ID: {p.product_id}) - mentioned {format_time_ago(p.seen_at, now)}"
        for p in mentioned
    )
    return (
        f"{instructions}\n\n**Products Being Discussed:**\n{lines}\n\n"
        "Use these product IDs when calling tools. DO NOT search for these products again."
    )
