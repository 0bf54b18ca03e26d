"""
Sensitive data sanitizer
Masks account numbers, contact details and identifiers before page text
leaves the process, and counts what was masked.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from typing import Dict, List, Pattern, Tuple

from ..models.extraction_result import SecurityBreakdown

logger = logging.getLogger(__name__)


def _patterns(*specs: Tuple[str, int]) -> List[Pattern[str]]:
    return [re.compile(expr, flags) for expr, flags in specs]


# Applied in this order; earlier kinds win on overlapping text.
SANITIZATION_PATTERNS: Dict[str, List[Pattern[str]]] = {
    'account_numbers': _patterns(
        (r"\b\d{9,18}\b", 0),
        (r"\b\d{4}[\s-]?\d{4}[\s-]?\d{4}[\s-]?\d{4,6}\b", 0),
        (r"\bAC[.\s]?NO[.\s]?:?\s*\d{9,18}\b", re.IGNORECASE),
        (r"\bACCOUNT[.\s]?NUMBER[.\s]?:?\s*\d{9,18}\b", re.IGNORECASE),
    ),
    'card_numbers': _patterns(
        (r"\b\d{4}[\s-]?\d{4}[\s-]?\d{4}[\s-]?\d{4}\b", 0),
        (r"\b\d{15,16}\b", 0),
    ),
    'mobile_numbers': _patterns(
        (r"(?<![\w+])\+?91[\s-]?[6-9]\d{9}\b", 0),
        (r"\b[6-9]\d{9}\b", 0),
        (r"\b0[6-9]\d{9}\b", 0),
    ),
    'emails': _patterns(
        (r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b", 0),
    ),
    'pan_ids': _patterns(
        (r"\b[A-Z]{5}\d{4}[A-Z]\b", 0),
        (r"\bPAN[.\s]?:?\s*[A-Z]{5}\d{4}[A-Z]\b", re.IGNORECASE),
    ),
    'customer_ids': _patterns(
        (r"\bCUST[.\s]?ID[.\s]?:?\s*[A-Z0-9]{6,15}\b", re.IGNORECASE),
        (r"\bCUSTOMER[.\s]?ID[.\s]?:?\s*[A-Z0-9]{6,15}\b", re.IGNORECASE),
        (r"\bCIF[.\s]?:?\s*[A-Z0-9]{6,15}\b", re.IGNORECASE),
        (r"\bID[.\s]?:?\s*[A-Z0-9]{8,15}\b", re.IGNORECASE),
    ),
    'ifsc_codes': _patterns(
        (r"\b[A-Z]{4}0[A-Z0-9]{6}\b", 0),
        (r"\bIFSC[.\s]?:?\s*[A-Z]{4}0[A-Z0-9]{6}\b", re.IGNORECASE),
    ),
    'addresses': _patterns(
        (r"\b\d{1,4}[/\-,\s]+[A-Z][A-Za-z\s,]{10,50}[,\s]+[A-Z][A-Za-z\s]{5,20}[\s-]*\d{6}\b", 0),
        (r"\bPIN[.\s]?:?\s*\d{6}\b", re.IGNORECASE),
    ),
    'names': _patterns(
        (r"\bMR[.\s]+[A-Z][A-Z\s]{2,30}\b", re.IGNORECASE),
        (r"\bMRS[.\s]+[A-Z][A-Z\s]{2,30}\b", re.IGNORECASE),
        (r"\bMS[.\s]+[A-Z][A-Z\s]{2,30}\b", re.IGNORECASE),
        (r"\bDR[.\s]+[A-Z][A-Z\s]{2,30}\b", re.IGNORECASE),
    ),
}


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class SanitizationConfig:
    """Which kinds to mask and how"""
    enabled_kinds: Dict[str, bool] = field(default_factory=lambda: {
        'account_numbers': True,
        'card_numbers': True,
        'mobile_numbers': True,
        'emails': True,
        'pan_ids': True,
        'customer_ids': True,
        'ifsc_codes': True,
        'addresses': True,
        'names': False,  # aggressive, opt-in
    })
    mask_character: str = "*"
    preserve_format: bool = True

    @classmethod
    def from_env(cls) -> 'SanitizationConfig':
        config = cls()
        for kind, default in list(config.enabled_kinds.items()):
            config.enabled_kinds[kind] = _env_flag(f"BSE_SANITIZE_{kind.upper()}", default)
        config.mask_character = os.getenv("BSE_SANITIZATION_MASK_CHARACTER", config.mask_character) or "*"
        config.preserve_format = _env_flag("BSE_SANITIZATION_PRESERVE_FORMAT", config.preserve_format)
        return config


@dataclass(frozen=True)
class Detection:
    kind: str
    original: str
    masked: str
    position: int


@dataclass
class SanitizationResult:
    sanitized_text: str
    detections: List[Detection]
    breakdown: SecurityBreakdown


class DataSanitizer:
    """
    Detects and masks sensitive values in statement text.

    Pattern families run in a fixed order over the progressively masked
    text, so a value masked by one family is not counted again by a later one.
    """

    def __init__(self, config: SanitizationConfig = None):
        self.config = config or SanitizationConfig()

    def mask(self, value: str) -> str:
        char = self.config.mask_character
        if not self.config.preserve_format:
            return char * len(value)
        return re.sub(r"[A-Za-z0-9]", char, value)

    def sanitize(self, text: str) -> SanitizationResult:
        sanitized = text or ""
        detections: List[Detection] = []
        counts = {kind: 0 for kind in SANITIZATION_PATTERNS}

        for kind, patterns in SANITIZATION_PATTERNS.items():
            if not self.config.enabled_kinds.get(kind, False):
                continue

            for pattern in patterns:
                def _replace(match: 're.Match[str]', kind: str = kind) -> str:
                    original = match.group(0)
                    masked = self.mask(original)
                    detections.append(Detection(kind, original, masked, match.start()))
                    counts[kind] += 1
                    return masked

                sanitized = pattern.sub(_replace, sanitized)

        breakdown = SecurityBreakdown(**counts)
        if detections:
            logger.info(f"Sanitized {len(detections)} sensitive items: {breakdown.to_dict()}")

        return SanitizationResult(
            sanitized_text=sanitized,
            detections=detections,
            breakdown=breakdown
        )
