"""
Configuration constants and enums for the Invoice Reconciliation Service.
"""

import logging
import os
from enum import Enum
from typing import Final

# ============================================================================
# Tax & Rounding Defaults
# ============================================================================

class TaxType(str, Enum):
    """Whether a monetary figure already includes consumption tax."""
    INCLUDED = "included"
    EXCLUDED = "excluded"


class CalculationType(str, Enum):
    """Point in the arithmetic where tax rounding is applied."""
    PER_ITEM = "per_item"
    SUBTOTAL = "subtotal"
    TOTAL = "total"


class RoundingMode(str, Enum):
    """Rounding function applied to tax-included amounts."""
    FLOOR = "floor"
    CEIL = "ceil"
    ROUND = "round"


DEFAULT_TAX_RATE: Final[float] = 0.10
DEFAULT_CALCULATION_TYPE: Final[str] = CalculationType.TOTAL.value
DEFAULT_ROUNDING_MODE: Final[str] = RoundingMode.FLOOR.value

# ============================================================================
# Reconciliation Tolerances
# ============================================================================

# Differences of at least this many currency units are reported as mismatches
MISMATCH_THRESHOLD: Final[float] = float(os.getenv("MISMATCH_THRESHOLD", "1"))

# ============================================================================
# Text Encodings
# ============================================================================

# Names suppliers use for the legacy Japanese 8-bit encoding.
# cp932 is the Windows superset of Shift_JIS that supplier exports are written in.
SHIFT_JIS_ALIASES: Final[set[str]] = {"shift-jis", "shift_jis", "sjis", "cp932", "ms932"}
SHIFT_JIS_CODEC: Final[str] = "cp932"

PDF_SIGNATURE: Final[bytes] = b"%PDF-"

# ============================================================================
# Supplier Identity
# ============================================================================

# Ordered: the first supplier whose alias occurs in the supplier name wins.
# "ore" is a common substring, so it must stay last.
SUPPLIER_ALIASES: Final[dict[str, tuple[str, ...]]] = {
    "daikichi": ("daikichi", "大吉"),
    "otakaraya": ("otakaraya", "おたからや"),
    "ecoring": ("ecoring", "エコリング"),
    "timeless": ("timeless", "タイムレス"),
    "apre": ("apre", "アプレ"),
    "revaauc": ("revaauc", "リバオク", "レバオク"),
    "ore": ("ore", "オーレ"),
}

# Filename keyword marking the PDF that carries line items for a supplier
ITEMS_PDF_KEYWORDS: Final[dict[str, str]] = {
    "apre": "落札明細",
    "revaauc": "精算書",
    "ore": "Slip",
}

# Suppliers whose items-PDF total comes from a different section than the
# authoritative grand total; a reference-PDF total supersedes it.
PROVISIONAL_TOTAL_SUPPLIERS: Final[set[str]] = {"apre"}

# ============================================================================
# Reference Document Filenames
# ============================================================================

INVOICE_FILENAME_KEYWORDS: Final[list[str]] = [
    "請求",
    "精算",
    "計算書",
    "invoice",
    "billing",
    "statement",
]

# Detail/summary listings are scanned before plain invoices
LISTING_FILENAME_KEYWORDS: Final[list[str]] = [
    "明細一覧",
    "一覧",
    "summary",
    "detail",
]

# ============================================================================
# Run Lifecycle
# ============================================================================

class RunStatus(str, Enum):
    """Lifecycle states of a reconciliation run."""
    CREATED = "created"
    PROCESSING = "processing"
    SUCCESS = "success"
    PARTIAL = "partial"
    ERROR = "error"


class ErrorCategory(str, Enum):
    """Prefixes for entries in a run's error list."""
    UNRECOGNIZED_DOCUMENT = "unrecognized_document"
    EXTRACTION_UNAVAILABLE = "extraction_unavailable"
    PERSISTENCE_FAILURE = "persistence_failure"
    DUPLICATE_PRODUCT_ID = "duplicate_product_id"
    RUN_FAILURE = "run_failure"


# ============================================================================
# API Configuration
# ============================================================================

API_HOST: Final[str] = os.getenv("API_HOST", "0.0.0.0")
API_PORT: Final[int] = int(os.getenv("API_PORT", "8000"))
MAX_UPLOAD_SIZE_MB: Final[int] = int(os.getenv("MAX_UPLOAD_SIZE_MB", "10"))

# ============================================================================
# Logging Configuration
# ============================================================================

LOG_LEVEL: Final[str] = os.getenv("LOG_LEVEL", "INFO")

def setup_logging() -> logging.Logger:
    """Configure and return the application logger."""
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    return logging.getLogger("invoice_recon")


logger = setup_logging()
