"""
Document extraction contract and the generic CSV/PDF extractors.

This module provides:
- The common ``Extractor`` contract: ``parse(bytes | str, config) -> ParseResult``
- Raw text extraction from PDF bytes using pdfplumber
- Byte decoding for UTF-8 and Shift_JIS supplier exports
- The generic column-mapped CSV extractor the per-supplier CSV extractors wrap
- The generic PDF extractor used when no supplier-specific layout is known

Extractors hold no state between calls: parsing the same input twice
yields identical results.
"""

import csv
import io
from abc import ABC, abstractmethod
from typing import Any, Optional, Union

import pdfplumber
from pydantic import ValidationError

from .config import PDF_SIGNATURE, SHIFT_JIS_ALIASES, SHIFT_JIS_CODEC, logger
from .normalizer import normalize_price
from .schemas import LineItem, ParseResult, ParserConfig


DocumentInput = Union[bytes, str]

# LineItem fields a CSV column mapping can populate directly
_MAPPED_TEXT_FIELDS = (
    "product_id",
    "name",
    "description",
    "brand",
    "box_number",
    "row_number",
    "original_product_id",
)


class ExtractorInputError(TypeError):
    """The extractor was handed the wrong kind of input (text vs bytes)."""


class ExtractionError(ValueError):
    """A document could not be read at all (empty, undecodable, no text)."""


# ============================================================================
# Contract
# ============================================================================

class Extractor(ABC):
    """
    One supplier document layout.

    Attributes:
        name: Identifier used in logs and provenance metadata
        accepts_text: True if ``parse`` also accepts pre-extracted text
        requires_external_text: True if the document's text must be extracted
            outside this process and handed in by the caller
    """
    name: str = "extractor"
    accepts_text: bool = False
    requires_external_text: bool = False

    @abstractmethod
    def parse(self, data: DocumentInput, config: Optional[ParserConfig] = None) -> ParseResult:
        """Extract line items and an optional invoice summary from one document."""

    def _require_bytes(self, data: DocumentInput) -> bytes:
        if isinstance(data, str):
            raise ExtractorInputError(f"{self.name} extractor requires raw bytes, got text")
        if not data:
            raise ExtractionError(f"{self.name}: document is empty")
        return data


# ============================================================================
# Low-level Helpers
# ============================================================================

def is_pdf_bytes(data: bytes) -> bool:
    """Check the PDF binary signature on the first bytes."""
    return data[:len(PDF_SIGNATURE)] == PDF_SIGNATURE


def extract_text_from_pdf_bytes(data: bytes) -> str:
    """
    Extract all text content from PDF bytes.

    Returns:
        Concatenated text from all pages, or "" if the PDF cannot be read
    """
    text_parts = []

    try:
        with pdfplumber.open(io.BytesIO(data)) as pdf:
            for page in pdf.pages:
                page_text = page.extract_text()
                if page_text:
                    text_parts.append(page_text)
    except Exception as e:
        logger.error(f"Error extracting text from PDF: {e}")
        return ""

    return "\n".join(text_parts)


def decode_bytes(data: bytes, encoding: str = "utf-8") -> str:
    """
    Decode supplier bytes, handling Shift_JIS aliases and a UTF-8 BOM.

    Undecodable bytes are replaced so one bad cell does not lose the file.
    """
    codec = encoding.lower()
    if codec in SHIFT_JIS_ALIASES:
        codec = SHIFT_JIS_CODEC
    elif codec.replace("_", "-") in ("utf-8", "utf8"):
        codec = "utf-8-sig"

    try:
        return data.decode(codec, errors="replace")
    except LookupError as e:
        raise ExtractionError(f"Unknown text encoding: {encoding}") from e


def read_csv_records(text: str, skip_rows: Optional[list[int]] = None) -> list[dict[str, str]]:
    """
    Parse CSV text with a header row into trimmed records.

    Blank lines are ignored. ``skip_rows`` holds zero-based indices of data
    rows (after the header) to drop, e.g. a second physical header row.
    """
    skip = set(skip_rows or [])
    rows = [
        row for row in csv.reader(io.StringIO(text))
        if any(cell.strip() for cell in row)
    ]
    if not rows:
        return []

    header = [cell.strip() for cell in rows[0]]
    records = []
    for index, row in enumerate(rows[1:]):
        if index in skip:
            continue
        records.append({
            column: cell.strip()
            for column, cell in zip(header, row)
            if column
        })
    return records


def parse_quantity(value: Any) -> int:
    """Quantity cell to a positive integer, defaulting to 1."""
    quantity = int(normalize_price(value) if value is not None else 0)
    return quantity if quantity > 0 else 1


def _camel(field: str) -> str:
    head, *rest = field.split("_")
    return head + "".join(part.title() for part in rest)


def get_mapped_value(record: dict[str, str], mapping: dict[str, str], field: str) -> Optional[str]:
    """
    Look up ``field`` in a CSV record through the column mapping.

    Falls back to a column literally named after the field when unmapped.
    """
    key = _camel(field)
    column = mapping.get(key)
    if column and column in record:
        return record[column]
    return record.get(key)


# ============================================================================
# Generic Extractors
# ============================================================================

class CsvExtractor(Extractor):
    """
    Column-mapped CSV extractor.

    Decodes the bytes with the configured encoding, maps columns onto LineItem
    fields and rejects rows whose name is empty or whose price is invalid.
    Every mapped column is also copied into ``metadata`` so supplier wrappers
    can post-process extras.
    """
    name = "csv"

    def parse(self, data: DocumentInput, config: Optional[ParserConfig] = None) -> ParseResult:
        raw = self._require_bytes(data)
        config = config or ParserConfig()

        text = decode_bytes(raw, config.encoding)
        records = read_csv_records(text, config.skip_rows)
        mapping = config.mapping

        items: list[LineItem] = []
        for row_index, record in enumerate(records):
            fields = {
                field: get_mapped_value(record, mapping, field)
                for field in _MAPPED_TEXT_FIELDS
            }
            if not fields["name"]:
                logger.debug(f"{self.name}: skipping row {row_index} without a name")
                continue

            extras = {
                key: record[column]
                for key, column in mapping.items()
                if column in record
            }

            try:
                item = LineItem(
                    product_id=fields["product_id"] or "",
                    name=fields["name"],
                    description=fields["description"] or None,
                    brand=fields["brand"] or None,
                    box_number=fields["box_number"] or None,
                    row_number=fields["row_number"] or None,
                    original_product_id=fields["original_product_id"] or None,
                    purchase_price=normalize_price(get_mapped_value(record, mapping, "purchase_price") or 0),
                    commission=normalize_price(get_mapped_value(record, mapping, "commission") or 0),
                    quantity=parse_quantity(get_mapped_value(record, mapping, "quantity")),
                    metadata=extras,
                )
            except ValidationError as e:
                logger.debug(f"{self.name}: skipping malformed row {row_index}: {e}")
                continue

            items.append(item)

        logger.info(f"{self.name}: extracted {len(items)} line items from {len(records)} rows")
        return ParseResult(items=items)


class GenericPdfExtractor(Extractor):
    """
    Fallback for PDFs from suppliers without a known layout.

    Reads the text to confirm the document is usable but yields no line
    items; claimed totals for such suppliers come from the invoice-summary
    text extractor instead.
    """
    name = "pdf"
    accepts_text = True

    def parse(self, data: DocumentInput, config: Optional[ParserConfig] = None) -> ParseResult:
        if isinstance(data, str):
            text = data
        else:
            text = extract_text_from_pdf_bytes(self._require_bytes(data))

        if not text.strip():
            raise ExtractionError(f"{self.name}: no text could be extracted")

        logger.info(f"{self.name}: no supplier layout known, {len(text)} characters ignored")
        return ParseResult()
