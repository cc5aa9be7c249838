"""
Supplier-specific PDF extractors.

Each extractor locates a known start marker in the page text, ignores
everything before it and scans forward for fixed-shape rows until an end
marker or the end of the text. ``parse_text`` works on already extracted
text and is what the tests exercise directly.
"""

import re
from abc import abstractmethod
from typing import Any, Optional

from pydantic import ValidationError

from .config import logger
from .extractor import (
    DocumentInput,
    ExtractionError,
    Extractor,
    extract_text_from_pdf_bytes,
)
from .normalizer import convert_half_width_to_full_width, normalize_price
from .schemas import InvoiceSummary, LineItem, ParseResult, ParserConfig


class PdfTextExtractor(Extractor):
    """Base for PDF layouts: obtain the page text, then delegate to ``parse_text``."""

    def parse(self, data: DocumentInput, config: Optional[ParserConfig] = None) -> ParseResult:
        if isinstance(data, str) and self.accepts_text:
            text = data
        else:
            text = extract_text_from_pdf_bytes(self._require_bytes(data))

        if not text.strip():
            raise ExtractionError(f"{self.name}: no text could be extracted")

        result = self.parse_text(text)
        if not result.items:
            logger.warning(f"{self.name}: no line items found")
        else:
            logger.info(f"{self.name}: extracted {len(result.items)} line items")
        return result

    @abstractmethod
    def parse_text(self, text: str) -> ParseResult:
        """Extract line items and an optional invoice summary from page text."""

    def _build_item(self, **fields: Any) -> Optional[LineItem]:
        """Construct one row's LineItem; malformed rows are logged and dropped."""
        try:
            return LineItem(**fields)
        except ValidationError as e:
            logger.debug(f"{self.name}: skipping malformed row {fields.get('product_id')!r}: {e}")
            return None


def _first_word(name: str) -> Optional[str]:
    match = re.match(r"^([^\s　]+)", name)
    return match.group(1) if match else None


# ============================================================================
# Apre
# ============================================================================

APRE_START_MARKER = "株式会社アプレ"

_APRE_COMMISSION_LINE = re.compile(r"^\d{1,3}(?:,\d{3})*$")
_APRE_BOX_NUMBER = re.compile(r"^\d{3}$")
_APRE_ACCESSORY_LINE = re.compile(r"^(錠|箱|シール|タグなし)$")
_APRE_PRICE = re.compile(r"^[1-9]\d{0,2}(?:,\d{3})+$")
_APRE_BARE_DIGITS = re.compile(r"^\d+$")

APRE_NOISE_PATTERNS = [
    "ページ",
    "開催日",
    "落札計",
    "手数料計",
    "総計",
    "ナインスボトム",
    "金      額",
    APRE_START_MARKER,
    "登録番号",
    "落 札 明 細",
    "消費税",
    "ブランド",
    "箱番",
    "行番",
    "手数料付属品",
    "品           名",
    "数量No",
    "落札(10%対象)",
    "手数料(10%対象)",
]


def split_no_and_price(token: str, previous_no: int = 0) -> tuple[str, str]:
    """
    Split Apre's concatenated quantity + No + price token.

    The PDF text runs a one-digit quantity, a 1-2 digit item No and a
    comma-grouped price together (``"1129,000"``). Every No length whose
    remainder is a valid price is a candidate; when both lengths fit, the No
    closest to ``previous_no + 1`` wins, ties going to the one-digit No.
    Items are assumed to be numbered in sequence, so an out-of-order
    listing can still be split wrongly.

    Returns:
        (no, price); no is "0" and price the whole token when nothing fits

    Examples:
        "125,000" -> ("2", "5,000")
        "1129,000" after No 11 -> ("12", "9,000")
    """
    if "," not in token:
        return "0", token

    candidates = []
    for length in (1, 2):
        no = token[1:1 + length]
        price = token[1 + length:]
        if len(no) == length and no.isdigit() and not no.startswith("0") and _APRE_PRICE.match(price):
            candidates.append((no, price))

    if not candidates:
        return "0", token

    expected = previous_no + 1
    return min(candidates, key=lambda c: abs(int(c[0]) - expected))


def _is_apre_noise(line: str) -> bool:
    return any(pattern in line for pattern in APRE_NOISE_PATTERNS)


class ApreExtractor(PdfTextExtractor):
    """
    Apre auction result listing (落札明細).

    Each item is a block of lines: commission, row number, three-digit box
    number, the quantity+No+price token, then the name lines. The product ID
    is ``box-row``.
    """
    name = "apre"

    def parse_text(self, text: str) -> ParseResult:
        return ParseResult(
            items=self.extract_items(text),
            invoice_summary=self.extract_summary(text),
        )

    def extract_items(self, text: str) -> list[LineItem]:
        lines = text.split("\n")
        start = next((i for i, line in enumerate(lines) if APRE_START_MARKER in line), None)
        if start is None:
            logger.warning(f"{self.name}: start marker '{APRE_START_MARKER}' not found")
            return []

        items: list[LineItem] = []
        previous_no = 0
        i = start + 1

        while i < len(lines):
            line = lines[i].strip()
            if not _APRE_COMMISSION_LINE.match(line) or i + 4 >= len(lines):
                i += 1
                continue

            row_number = lines[i + 1].strip()
            box_number = lines[i + 2].strip()
            if not (_APRE_BOX_NUMBER.match(box_number) and _APRE_BARE_DIGITS.match(row_number)):
                i += 1
                continue

            no, price = split_no_and_price(lines[i + 3].strip(), previous_no)
            name, accessories, next_index = self._extract_name(lines, i + 4)

            if name:
                item = self._build_item(
                    product_id=f"{box_number}-{row_number}",
                    box_number=box_number,
                    row_number=row_number,
                    original_product_id=no,
                    name=name,
                    purchase_price=normalize_price(price),
                    commission=normalize_price(line),
                    quantity=1,
                    brand=_first_word(name),
                    metadata={
                        "no": no,
                        "accessories": accessories,
                        "boxNumber": box_number,
                        "rowNumber": row_number,
                    },
                )
                if item is not None:
                    items.append(item)
                previous_no = int(no)

            i = next_index

        return items

    def _extract_name(self, lines: list[str], start: int) -> tuple[str, Optional[str], int]:
        """Collect name lines up to the next commission line or an accessory line."""
        parts: list[str] = []
        accessories = None
        j = start

        while j < len(lines):
            line = lines[j].strip()
            if _APRE_COMMISSION_LINE.match(line):
                break
            if _APRE_ACCESSORY_LINE.match(line):
                accessories = line
                j += 1
                break
            if line and not _is_apre_noise(line) and not _APRE_BARE_DIGITS.match(line):
                parts.append(line)
            j += 1

        return " ".join(parts).strip(), accessories, j

    def extract_summary(self, text: str) -> Optional[InvoiceSummary]:
        """
        Grand total line: ``総計 <落札計> <手数料計>``.

        The total is the sum of both figures and is provisional; the
        reference invoice's billed amount supersedes it.
        """
        for line in text.split("\n"):
            line = line.strip()
            if not line.startswith("総計"):
                continue

            amounts = line[len("総計"):].split()
            if len(amounts) >= 2:
                subtotal = normalize_price(amounts[0])
                commission = normalize_price(amounts[1])
                return InvoiceSummary(
                    total_amount=subtotal + commission,
                    subtotal=subtotal,
                    metadata={"source": "apre_listing", "commission": commission},
                )

        logger.warning(f"{self.name}: grand total line not found")
        return None


# ============================================================================
# Ore
# ============================================================================

ORE_START_MARKERS = ("【買い明細】", "通番号")
ORE_END_MARKER = "買い合計件数"

# serial(4) itemNo(1-2) name -price -commission -rate%
_ORE_ROW = re.compile(
    r"(\d{4})\s+(\d{1,2})\s+(.+?)\s+-\s*([\d,]+)\s+-\s*([\d,]+)\s+-(\d+(?:\.\d+)?)%"
)
_KATAKANA_RUN = re.compile(r"^([ァ-ヴー]+)")


class OreExtractor(PdfTextExtractor):
    """
    Ore settlement statement (御精算書), buy section only.

    Its text layer cannot be read in-process, so the engine hands this
    extractor text produced elsewhere; raw bytes are still accepted.
    """
    name = "ore"
    accepts_text = True
    requires_external_text = True

    def parse_text(self, text: str) -> ParseResult:
        start = -1
        for marker in ORE_START_MARKERS:
            start = text.find(marker)
            if start != -1:
                break
        if start == -1:
            logger.warning(f"{self.name}: start marker not found")
            return ParseResult()

        section = text[start:]
        end = section.find(ORE_END_MARKER)
        if end != -1:
            section = section[:end]

        items = []
        for match in _ORE_ROW.finditer(section):
            serial_no, product_no, raw_name, price, commission, rate = match.groups()
            name = convert_half_width_to_full_width(raw_name.strip())
            if not name:
                logger.debug(f"{self.name}: skipping row {serial_no}-{product_no} without a name")
                continue

            item = self._build_item(
                product_id=f"{serial_no}-{product_no}",
                original_product_id=product_no,
                name=name,
                purchase_price=normalize_price(price),
                commission=normalize_price(commission),
                quantity=1,
                brand=self._extract_brand(name),
                metadata={
                    "serialNo": serial_no,
                    "productNo": product_no,
                    "commissionRate": float(rate),
                },
            )
            if item is not None:
                items.append(item)

        return ParseResult(items=items)

    @staticmethod
    def _extract_brand(name: str) -> Optional[str]:
        match = _KATAKANA_RUN.match(name)
        if match:
            return match.group(1)
        words = name.split()
        return words[0] if words else None


# ============================================================================
# RevaAuc
# ============================================================================

REVAAUC_START_MARKER = "（A）御落札商品一覧"

_REVAAUC_INVOICE_NO = re.compile(r"(\d{8,}_\d+)請求書No")
_REVAAUC_PRICE_LINE = re.compile(r"^(.*)[¥￥]([\d,]+)[¥￥](\d{3,5})(\d{2,3})(.*)$")
_REVAAUC_PAGE_FOOTER = re.compile(r"^\d+\s*/\s*\d+$")
_REVAAUC_NAME_PREFIX = re.compile(r"^【[^】]+】")

REVAAUC_HEADER_WORDS = [
    "ロット番号",
    "品名",
    "落札価格",
    "手数料",
    "数量",
    "付属品",
    "請求書No",
    "御落札商品一覧",
]


def _is_revaauc_end(line: str) -> bool:
    return (
        "（B）" in line
        or "御出品" in line
        or "ページ" in line
        or bool(_REVAAUC_PAGE_FOOTER.match(line))
    )


class RevaAucExtractor(PdfTextExtractor):
    """
    RevaAuc settlement (精算書), won-lots section (A).

    Name lines accumulate until a price line ``name¥price¥commission No+qty``
    closes the item. The lot number column does not survive text extraction,
    so the item No is the product ID.
    """
    name = "revaauc"

    def parse_text(self, text: str) -> ParseResult:
        invoice_match = _REVAAUC_INVOICE_NO.search(text)
        invoice_no = invoice_match.group(1) if invoice_match else "UNKNOWN"

        lines = text.split("\n")
        start = next((i for i, line in enumerate(lines) if REVAAUC_START_MARKER in line), None)
        if start is None:
            logger.warning(f"{self.name}: start marker '{REVAAUC_START_MARKER}' not found")
            return ParseResult()

        items: list[LineItem] = []
        name_lines: list[str] = []

        for raw_line in lines[start + 1:]:
            line = raw_line.strip()
            if not line:
                continue
            if _is_revaauc_end(line):
                break
            if any(word in line for word in REVAAUC_HEADER_WORDS):
                continue

            match = _REVAAUC_PRICE_LINE.match(line)
            if not match:
                name_lines.append(line)
                continue

            name_part, price, commission, no_and_qty, accessories = match.groups()
            no, quantity = no_and_qty[:-1], no_and_qty[-1]
            if name_part.strip():
                name_lines.append(name_part.strip())
            name = " ".join(name_lines).strip()
            if not name:
                continue

            item = self._build_item(
                product_id=no,
                original_product_id=no,
                name=name,
                purchase_price=normalize_price(price),
                commission=normalize_price(commission),
                quantity=int(quantity) or 1,
                brand=_first_word(_REVAAUC_NAME_PREFIX.sub("", name).strip()),
                metadata={
                    "no": no,
                    "invoiceNo": invoice_no,
                    "accessories": accessories.strip() or None,
                },
            )
            if item is not None:
                items.append(item)
            name_lines = []

        return ParseResult(items=items)
