"""
Supplier-specific CSV extractors.

Each extractor wraps the generic ``CsvExtractor`` with the supplier's column
mapping and encoding, then post-processes the items (product ID synthesis,
metadata). Timeless is the exception: its PDF carries only an invoice summary,
and the same extractor handles both of its file kinds.
"""

import re
from typing import Optional

from .config import logger
from .extractor import (
    CsvExtractor,
    DocumentInput,
    ExtractionError,
    Extractor,
    extract_text_from_pdf_bytes,
    is_pdf_bytes,
)
from .normalizer import normalize_price
from .schemas import InvoiceSummary, LineItem, ParseResult, ParserConfig


def merge_config(defaults: ParserConfig, config: Optional[ParserConfig]) -> ParserConfig:
    """Overlay the fields a caller explicitly set on top of supplier defaults."""
    if config is None:
        return defaults
    return defaults.model_copy(update=config.model_dump(exclude_unset=True))


# ============================================================================
# Daikichi
# ============================================================================

DAIKICHI_CONFIG = ParserConfig(
    encoding="shift-jis",
    mapping={
        "productId": "商品番号",
        "boxNumber": "箱番",
        "rowNumber": "行番",
        "name": "商品名",
        "purchasePrice": "商品単価（税別）",
        "brand": "ブランド",
        "rank": "ランク",
        "genre": "ジャンル",
        "quantity": "数量",
        "commission": "買い手数料（税別）",
    },
)


class DaikichiCsvExtractor(Extractor):
    """
    Daikichi listing export (Shift_JIS, tax-excluded prices).

    When the export carries box and row columns the product ID is ``box-row``;
    otherwise the supplier's own product number is used.
    """
    name = "daikichi"

    def __init__(self) -> None:
        self._csv = CsvExtractor()

    def parse(self, data: DocumentInput, config: Optional[ParserConfig] = None) -> ParseResult:
        result = self._csv.parse(data, merge_config(DAIKICHI_CONFIG, config))

        items = []
        for item in result.items:
            extras = item.metadata
            product_id = item.product_id
            if item.box_number and item.row_number:
                product_id = f"{item.box_number}-{item.row_number}"

            items.append(item.model_copy(update={
                "product_id": product_id,
                "metadata": {
                    "brand": item.brand,
                    "rank": extras.get("rank"),
                    "genre": extras.get("genre"),
                    "quantity": item.quantity,
                    "commission": item.commission,
                },
            }))

        return ParseResult(items=items)


# ============================================================================
# Otakaraya
# ============================================================================

OTAKARAYA_CONFIG = ParserConfig(
    encoding="utf-8",
    mapping={
        "line": "ライン",
        "tagNumber": "札番",
        "genre": "商品ジャンル",
        "brand": "ブランド",
        "name": "商品名",
        "gemName": "宝石名",
        "shapeName": "形状名",
        "carat": "カラット数",
        "rank": "ランク",
        "purchasePrice": "落札金額（税抜）",
        "commission": "手数料（税抜）",
        "subtotal": "小計（税抜）",
    },
)


class OtakarayaCsvExtractor(Extractor):
    """Otakaraya results export (UTF-8 with BOM); the tag number is the product ID."""
    name = "otakaraya"

    def __init__(self) -> None:
        self._csv = CsvExtractor()

    def parse(self, data: DocumentInput, config: Optional[ParserConfig] = None) -> ParseResult:
        result = self._csv.parse(data, merge_config(OTAKARAYA_CONFIG, config))

        items = []
        for item in result.items:
            extras = item.metadata
            tag_number = extras.get("tagNumber")
            items.append(item.model_copy(update={
                "product_id": str(tag_number) if tag_number else "",
                "metadata": {
                    "line": extras.get("line"),
                    "tagNumber": tag_number,
                    "brand": item.brand,
                    "rank": extras.get("rank"),
                    "genre": extras.get("genre"),
                    "gemName": extras.get("gemName"),
                    "shapeName": extras.get("shapeName"),
                    "carat": extras.get("carat"),
                },
            }))

        return ParseResult(items=items, invoice_summary=result.invoice_summary)


# ============================================================================
# Ecoring
# ============================================================================

ECORING_IMAGE_COLUMNS = [f"image_{i:02d}" for i in range(1, 11)]

# The English header row is the real header; the Japanese header row that
# follows it is the first data row and is dropped by position.
ECORING_CONFIG = ParserConfig(
    encoding="shift-jis",
    skip_rows=[0],
    mapping={
        "productId": "buyout_number",
        "receiptNumber": "receipt_number",
        "name": "item_name",
        "memo": "memo",
        "purchasePrice": "bid_price",
        "commission": "purchase_commission",
        "purchasePriceTax": "bid_price_tax",
        "commissionTax": "purchase_commission_tax",
        "buyTotal": "buy_total",
        **{column: column for column in ECORING_IMAGE_COLUMNS},
    },
)

_MANAGEMENT_NUMBER = re.compile(r"^\(([^)]+)\)")


class EcoringCsvExtractor(Extractor):
    """
    Ecoring buyout export with a two-row (English + Japanese) header.

    The management number is taken from a ``(xxxx_xxxx)`` prefix of the name.
    """
    name = "ecoring"

    def __init__(self) -> None:
        self._csv = CsvExtractor()

    def parse(self, data: DocumentInput, config: Optional[ParserConfig] = None) -> ParseResult:
        result = self._csv.parse(data, merge_config(ECORING_CONFIG, config))

        items = []
        for item in result.items:
            extras = item.metadata
            match = _MANAGEMENT_NUMBER.match(item.name)
            images = [
                extras[column].strip()
                for column in ECORING_IMAGE_COLUMNS
                if extras.get(column, "").strip()
            ]
            items.append(item.model_copy(update={
                "description": extras.get("memo") or None,
                "metadata": {
                    "buyoutNumber": extras.get("productId"),
                    "receiptNumber": extras.get("receiptNumber"),
                    "memo": extras.get("memo"),
                    "managementNumber": match.group(1) if match else "",
                    "images": images,
                    "purchasePriceTax": normalize_price(extras.get("purchasePriceTax") or 0),
                    "commissionTax": normalize_price(extras.get("commissionTax") or 0),
                    "buyTotal": normalize_price(extras.get("buyTotal") or 0),
                },
            }))

        return ParseResult(items=items)


# ============================================================================
# Timeless
# ============================================================================

TIMELESS_CONFIG = ParserConfig(
    encoding="shift-jis",
    mapping={
        "no": "No",
        "productId": "商品番号",
        "originalProductId": "商品番号",
        "brand": "ブランド名",
        "name": "商品名",
        "accessories": "付属品",
        "remarks": "備考",
        "priceExcludingTax": "金額(税抜)",
        "purchasePrice": "金額(税込)",
        "commissionExcludingTax": "手数料(税抜)",
        "commission": "手数料(税込)",
    },
)

_TAX_INCLUDED = r"[\(（]\s*税込\s*[\)）]"

TIMELESS_SUMMARY_PATTERNS = {
    "subtotal": re.compile(rf"仕入計\s*{_TAX_INCLUDED}\s*([\d,]+)"),
    "commission": re.compile(rf"仕入手数料計\s*{_TAX_INCLUDED}\s*([\d,]+)"),
    "participation_fee": re.compile(rf"参加費\s*{_TAX_INCLUDED}\s*([\d,]+)"),
    "total": re.compile(r"貴社お支払金額\s*([\d,]+)"),
}


def extract_timeless_summary(text: str) -> Optional[InvoiceSummary]:
    """
    Read the labelled totals of a Timeless statement.

    Example layout::

        仕入計 (税込)711,700
        仕入手数料計 (税込)21,351
        参加費 (税込)3,000
        貴社お支払金額736,051
    """
    amounts = {key: 0.0 for key in TIMELESS_SUMMARY_PATTERNS}

    for line in text.split("\n"):
        line = line.strip()
        for key, pattern in TIMELESS_SUMMARY_PATTERNS.items():
            match = pattern.search(line)
            if match:
                amounts[key] = normalize_price(match.group(1))
                logger.debug(f"timeless: {key}={amounts[key]}")

    if amounts["total"] <= 0:
        logger.warning("timeless: payable amount not found in statement")
        return None

    return InvoiceSummary(
        total_amount=amounts["total"],
        subtotal=amounts["subtotal"] or None,
        participation_fee=amounts["participation_fee"] or None,
        metadata={
            "source": "timeless_statement",
            "commission": amounts["commission"] or None,
        },
    )


class TimelessExtractor(Extractor):
    """
    Timeless documents: CSV purchase listing or PDF statement.

    The file kind is decided by the ``%PDF-`` signature, not by the declared
    media type. The PDF carries no line items, only the claimed total; the CSV
    items use the tax-included price and commission columns.
    """
    name = "timeless"

    def __init__(self) -> None:
        self._csv = CsvExtractor()

    def parse(self, data: DocumentInput, config: Optional[ParserConfig] = None) -> ParseResult:
        raw = self._require_bytes(data)
        if is_pdf_bytes(raw):
            return self._parse_pdf(raw)
        return self._parse_csv(raw, config)

    def _parse_pdf(self, raw: bytes) -> ParseResult:
        text = extract_text_from_pdf_bytes(raw)
        if not text.strip():
            raise ExtractionError(f"{self.name}: no text could be extracted")
        return ParseResult(invoice_summary=extract_timeless_summary(text))

    def _parse_csv(self, raw: bytes, config: Optional[ParserConfig]) -> ParseResult:
        result = self._csv.parse(raw, merge_config(TIMELESS_CONFIG, config))

        items: list[LineItem] = []
        for item in result.items:
            if not item.product_id:
                logger.debug(f"{self.name}: skipping row without a product number: {item.name}")
                continue

            extras = item.metadata
            full_name = f"{item.brand} {item.name}" if item.brand else item.name
            items.append(item.model_copy(update={
                "name": full_name,
                "quantity": 1,
                "metadata": {
                    "accessories": extras.get("accessories", ""),
                    "remarks": extras.get("remarks", ""),
                    "priceExcludingTax": normalize_price(extras.get("priceExcludingTax") or 0),
                    "priceIncludingTax": item.purchase_price,
                    "commissionExcludingTax": normalize_price(extras.get("commissionExcludingTax") or 0),
                    "commissionIncludingTax": item.commission,
                },
            }))

        return ParseResult(items=items)
