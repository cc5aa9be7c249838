"""
Claimed-total extraction from reference invoice text.

Suppliers whose listings carry no grand total send a separate invoice PDF.
The billed amount is located with supplier-specific label patterns; any
other supplier is tried against a generic set of billing labels.
"""

import re
from typing import Optional

from .config import logger
from .csv_extractors import extract_timeless_summary
from .normalizer import normalize_price
from .schemas import InvoiceSummary
from .selector import resolve_supplier_key


_YEN = r"[¥￥]"

SUPPLIER_PATTERNS: dict[str, list[re.Pattern]] = {
    # 合計352,965円
    "daikichi": [
        re.compile(r"合計\s*([\d,]+)\s*円"),
        re.compile(r"ご請求金額\s*([\d,]+)\s*円"),
    ],
    # 御請求金額 ￥2,033,735 (labels are sometimes doubled by the text layer)
    "otakaraya": [
        re.compile(rf"御請求金額\s*{_YEN}\s*([\d,]+)"),
        re.compile(rf"御請求金額御請求金額\s*{_YEN}{_YEN}\s*([\d,]+)"),
    ],
    # ◎ご請求金額◎エコリングからのお支払額 ¥122,313
    "ecoring": [
        re.compile(rf"ご請求金額[\s\S]*?{_YEN}\s*([\d,]+)"),
        re.compile(rf"エコリングからのお支払額[\s\S]*?{_YEN}\s*([\d,]+)"),
        re.compile(rf"お支払額[\s\S]*?{_YEN}\s*([\d,]+)"),
        re.compile(rf"請求金額[\s\S]*?{_YEN}\s*([\d,]+)"),
    ],
    "apre": [
        re.compile(rf"御請求金額[\s\S]{{0,200}}{_YEN}\s*([\d,]+)"),
        re.compile(rf"ご請求金額[\s\S]{{0,200}}{_YEN}\s*([\d,]+)"),
        re.compile(rf"請求金額[\s\S]{{0,200}}{_YEN}\s*([\d,]+)"),
    ],
}

GENERIC_PATTERNS: list[re.Pattern] = [
    re.compile(rf"御請求金額\s*{_YEN}?\s*([\d,]+)"),
    re.compile(rf"ご請求金額\s*{_YEN}?\s*([\d,]+)"),
    re.compile(rf"お支払金額\s*{_YEN}?\s*([\d,]+)"),
    re.compile(rf"合計金額\s*{_YEN}?\s*([\d,]+)"),
    re.compile(rf"(?i)(?:grand\s+)?total(?:\s+amount)?\s*:?\s*{_YEN}?\s*([\d,]+)"),
]

# Apre's listing summary opens with the billed amount
_FIRST_YEN_AMOUNT = re.compile(rf"{_YEN}\s*([\d,]+)")
APRE_MIN_LEADING_AMOUNT = 1000


def _match_patterns(text: str, patterns: list[re.Pattern], source: str) -> Optional[InvoiceSummary]:
    for pattern in patterns:
        match = pattern.search(text)
        if not match:
            continue
        amount = normalize_price(match.group(1))
        if amount <= 0:
            continue
        logger.debug(f"{source}: billed amount {amount} matched {pattern.pattern}")
        return InvoiceSummary(
            total_amount=amount,
            metadata={"source": source, "pattern": pattern.pattern},
        )
    return None


def _extract_apre(text: str) -> Optional[InvoiceSummary]:
    match = _FIRST_YEN_AMOUNT.search(text)
    if match:
        amount = normalize_price(match.group(1))
        if amount >= APRE_MIN_LEADING_AMOUNT:
            return InvoiceSummary(
                total_amount=amount,
                metadata={"source": "apre_invoice", "pattern": "first_amount"},
            )
    return _match_patterns(text, SUPPLIER_PATTERNS["apre"], "apre_invoice")


def extract_invoice_summary(text: str, supplier_name: str) -> Optional[InvoiceSummary]:
    """
    Find the billed amount in invoice text.

    Args:
        text: Text layer of a reference document
        supplier_name: Free-text supplier name, resolved through the alias table

    Returns:
        InvoiceSummary carrying the matched pattern as provenance, or None
    """
    if not text or not text.strip():
        return None

    key = resolve_supplier_key(supplier_name)
    if key == "apre":
        summary = _extract_apre(text)
    elif key == "timeless":
        summary = extract_timeless_summary(text)
    elif key in SUPPLIER_PATTERNS:
        summary = _match_patterns(text, SUPPLIER_PATTERNS[key], f"{key}_invoice")
    else:
        summary = _match_patterns(text, GENERIC_PATTERNS, "generic_invoice")

    if summary is None:
        logger.warning(f"No billed amount found in invoice text for supplier '{supplier_name}'")
    return summary
