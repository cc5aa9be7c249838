"""
Supplier-name resolution and extractor selection.
"""

from typing import Optional

from .config import SUPPLIER_ALIASES, logger
from .csv_extractors import (
    DaikichiCsvExtractor,
    EcoringCsvExtractor,
    OtakarayaCsvExtractor,
    TimelessExtractor,
)
from .extractor import CsvExtractor, Extractor, GenericPdfExtractor
from .pdf_extractors import ApreExtractor, OreExtractor, RevaAucExtractor


class UnsupportedFormatError(ValueError):
    """The declared media type is neither CSV nor PDF."""


CSV_EXTRACTORS: dict[str, type[Extractor]] = {
    "daikichi": DaikichiCsvExtractor,
    "otakaraya": OtakarayaCsvExtractor,
    "ecoring": EcoringCsvExtractor,
    "timeless": TimelessExtractor,
}

# Timeless statements arrive as PDFs but go through its dual-format extractor
PDF_EXTRACTORS: dict[str, type[Extractor]] = {
    "apre": ApreExtractor,
    "revaauc": RevaAucExtractor,
    "timeless": TimelessExtractor,
    "ore": OreExtractor,
}


def resolve_supplier_key(supplier_name: Optional[str]) -> Optional[str]:
    """
    Map a free-text supplier name onto a known supplier key.

    Aliases are matched case-insensitively as substrings in table order; the
    first hit wins.

    Examples:
        "Daikichi Auction" -> "daikichi"
        "株式会社アプレ" -> "apre"
        "Unknown Co" -> None
    """
    if not supplier_name:
        return None

    lowered = supplier_name.lower()
    for key, aliases in SUPPLIER_ALIASES.items():
        if any(alias.lower() in lowered for alias in aliases):
            return key
    return None


def is_supported(media_type: Optional[str]) -> bool:
    """True for media types the engine can extract (anything naming csv or pdf)."""
    if not media_type:
        return False
    lowered = media_type.lower()
    return "csv" in lowered or "pdf" in lowered


def select_extractor(media_type: Optional[str], supplier_name: Optional[str] = None) -> Extractor:
    """
    Pick the extractor for one document.

    Args:
        media_type: Declared media type, e.g. "text/csv" or "application/pdf"
        supplier_name: Free-text supplier name; unknown suppliers get the
            generic extractor for the format

    Returns:
        A fresh extractor instance

    Raises:
        UnsupportedFormatError: If the media type is neither CSV nor PDF
    """
    if not is_supported(media_type):
        raise UnsupportedFormatError(f"Unsupported file format: {media_type}")

    key = resolve_supplier_key(supplier_name)
    if "csv" in media_type.lower():
        table, fallback = CSV_EXTRACTORS, CsvExtractor
    else:
        table, fallback = PDF_EXTRACTORS, GenericPdfExtractor

    extractor = table.get(key, fallback)()
    logger.debug(f"Selected {extractor.name} extractor for {media_type} (supplier={supplier_name!r})")
    return extractor
