"""PII detection, masking, and placeholder resolution.

Sensitive spans are replaced with indexed placeholders such as ``[EMAIL_1]``.
The placeholder table (``PIIMetadata``) lives for a single turn: it is used to
restore real values right before a tool runs, and never written to history.
"""

import enum
import re
from dataclasses import dataclass, field
from typing import Any

PIIMetadata = dict[str, str]


class PIIKind(str, enum.Enum):
    """Kinds of personal data recognised in chat text."""

    EMAIL = "EMAIL"
    CREDIT_CARD = "CREDIT_CARD"
    SSN = "SSN"
    PHONE = "PHONE"
    DNI = "DNI"


# Earlier kinds win when spans overlap
_PATTERNS: list[tuple[PIIKind, re.Pattern[str]]] = [
    (PIIKind.EMAIL, re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")),
    (PIIKind.CREDIT_CARD, re.compile(r"\b(?:\d[ -]?){12,18}\d\b")),
    (PIIKind.SSN, re.compile(r"\b\d{3}[- ]\d{2}[- ]\d{4}\b")),
    (
        PIIKind.PHONE,
        re.compile(r"(?:\+\d{1,3}[ .-]?)?(?:\(\d{3}\)[ .-]?|\b\d{3}[ .-])\d{3}[ .-]\d{4}\b"),
    ),
    (PIIKind.DNI, re.compile(r"\b\d{1,2}\.\d{3}\.\d{3}\b|\b\d{7,8}\b")),
]

PLACEHOLDER_PATTERN = re.compile(r"\[(EMAIL|CREDIT_CARD|SSN|PHONE|DNI)_(\d+)\]")


@dataclass
class PIIMatch:
    """A detected span of personal data."""

    kind: PIIKind
    value: str
    start: int
    end: int


@dataclass
class MaskResult:
    """Masked text plus the placeholder table needed to reverse it."""

    sanitized: str
    metadata: PIIMetadata = field(default_factory=dict)

    @property
    def has_pii(self) -> bool:
        return bool(self.metadata)


def luhn_valid(number: str) -> bool:
    """Return True if the digit string passes the Luhn checksum."""
    digits = [int(d) for d in number if d.isdigit()]
    if len(digits) < 13 or len(digits) > 19:
        return False
    total = 0
    for i, digit in enumerate(reversed(digits)):
        if i % 2 == 1:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return total % 10 == 0


def detect_pii(text: str) -> list[PIIMatch]:
    """Find PII spans in ``text``, ordered by position.

    Kinds are scanned in priority order and a span is discarded when it
    overlaps one already claimed, so a card number never also shows up
    as a DNI.
    """
    claimed: list[PIIMatch] = []
    for kind, pattern in _PATTERNS:
        for m in pattern.finditer(text):
            if kind is PIIKind.CREDIT_CARD and not luhn_valid(m.group(0)):
                continue
            if any(m.start() < c.end and c.start < m.end() for c in claimed):
                continue
            claimed.append(PIIMatch(kind=kind, value=m.group(0), start=m.start(), end=m.end()))
    return sorted(claimed, key=lambda c: c.start)


def mask(text: str, existing: PIIMetadata | None = None) -> MaskResult:
    """Replace PII spans with stable, indexed placeholders.

    Each distinct value gets one placeholder, numbered per kind in order of
    first appearance. When ``existing`` is given, values already in it keep
    their placeholder and new ones continue its numbering.
    """
    metadata: PIIMetadata = dict(existing or {})
    by_value = {value: placeholder for placeholder, value in metadata.items()}
    counters: dict[str, int] = {}
    for placeholder in metadata:
        m = PLACEHOLDER_PATTERN.fullmatch(placeholder)
        if m:
            counters[m.group(1)] = max(counters.get(m.group(1), 0), int(m.group(2)))

    matches = detect_pii(text)
    if not matches:
        return MaskResult(sanitized=text, metadata=dict(existing or {}))

    parts: list[str] = []
    cursor = 0
    for match in matches:
        placeholder = by_value.get(match.value)
        if placeholder is None:
            counters[match.kind.value] = counters.get(match.kind.value, 0) + 1
            placeholder = f"[{match.kind.value}_{counters[match.kind.value]}]"
            by_value[match.value] = placeholder
            metadata[placeholder] = match.value
        parts.append(text[cursor : match.start])
        parts.append(placeholder)
        cursor = match.end
    parts.append(text[cursor:])

    return MaskResult(sanitized="".join(parts), metadata=metadata)


def resolve(text: str, metadata: PIIMetadata | None) -> str:
    """Replace every placeholder occurrence with its real value.

    Substitution is literal: placeholders are escaped before being compiled
    and values are inserted through a callable, so regex metacharacters or
    backslashes in either never change the result.
    """
    if not metadata or not text:
        return text
    keys = sorted(metadata, key=len, reverse=True)
    pattern = re.compile("|".join(re.escape(k) for k in keys))
    return pattern.sub(lambda m: metadata[m.group(0)], text)


def resolve_nested(value: Any, metadata: PIIMetadata | None) -> Any:
    """Resolve placeholders inside strings nested in dicts, lists and tuples."""
    if not metadata:
        return value
    if isinstance(value, str):
        return resolve(value, metadata)
    if isinstance(value, dict):
        return {k: resolve_nested(v, metadata) for k, v in value.items()}
    if isinstance(value, list):
        return [resolve_nested(v, metadata) for v in value]
    if isinstance(value, tuple):
        return tuple(resolve_nested(v, metadata) for v in value)
    return value


def contains_placeholder(text: str) -> bool:
    return bool(PLACEHOLDER_PATTERN.search(text))
