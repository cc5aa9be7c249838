"""
Tests for the generic and supplier-specific CSV extractors.

All documents are built in memory; Timeless PDF text extraction is patched.
"""

import pytest
from unittest.mock import patch

from invoice_recon.csv_extractors import (
    DaikichiCsvExtractor,
    EcoringCsvExtractor,
    OtakarayaCsvExtractor,
    TimelessExtractor,
    extract_timeless_summary,
)
from invoice_recon.extractor import (
    CsvExtractor,
    ExtractionError,
    ExtractorInputError,
    decode_bytes,
    read_csv_records,
)
from invoice_recon.schemas import ParserConfig

from conftest import make_daikichi_csv


TIMELESS_STATEMENT_TEXT = "\n".join([
    "御精算書",
    "仕入計 (税込)711,700",
    "仕入手数料計 (税込)21,351",
    "参加費 (税込)3,000",
    "貴社お支払金額736,051",
])


# ============================================================================
# Generic CSV
# ============================================================================

class TestReadCsvRecords:
    """Tests for CSV record reading."""

    def test_header_and_trimmed_cells(self):
        records = read_csv_records('name, price\n Watch ,"1,000"\n')
        assert records == [{"name": "Watch", "price": "1,000"}]

    def test_blank_lines_ignored(self):
        records = read_csv_records("name,price\n\n,\nRing,500\n")
        assert records == [{"name": "Ring", "price": "500"}]

    def test_skip_rows_are_data_row_indices(self):
        records = read_csv_records("id,name\n番号,名前\n1,Bag\n", skip_rows=[0])
        assert records == [{"id": "1", "name": "Bag"}]

    def test_empty_text(self):
        assert read_csv_records("") == []


class TestDecodeBytes:
    """Tests for supplier byte decoding."""

    def test_shift_jis_alias(self):
        assert decode_bytes("商品名".encode("cp932"), "Shift_JIS") == "商品名"

    def test_utf8_bom_stripped(self):
        assert decode_bytes("\ufeff札番".encode("utf-8"), "utf-8") == "札番"

    def test_unknown_encoding(self):
        with pytest.raises(ExtractionError):
            decode_bytes(b"abc", "no-such-codec")


class TestCsvExtractor:
    """Tests for the column-mapped CSV extractor."""

    def test_mapped_columns(self):
        data = "品名,価格,手数料\nWatch,\"¥12,000\",500\n".encode("utf-8")
        config = ParserConfig(mapping={"name": "品名", "purchasePrice": "価格", "commission": "手数料"})

        result = CsvExtractor().parse(data, config)

        assert len(result.items) == 1
        assert result.items[0].name == "Watch"
        assert result.items[0].purchase_price == 12000
        assert result.items[0].commission == 500

    def test_unmapped_fields_fall_back_to_field_named_columns(self):
        result = CsvExtractor().parse(b"name,purchasePrice\nRing,800\n")
        assert result.items[0].name == "Ring"
        assert result.items[0].purchase_price == 800

    def test_row_without_name_skipped(self):
        result = CsvExtractor().parse(b"name,purchasePrice\n,800\nRing,900\n")
        assert [item.name for item in result.items] == ["Ring"]

    def test_negative_price_row_dropped(self):
        result = CsvExtractor().parse(b"name,purchasePrice\nBag,-100\nRing,900\n")
        assert [item.name for item in result.items] == ["Ring"]

    def test_text_input_rejected(self):
        with pytest.raises(ExtractorInputError):
            CsvExtractor().parse("name,purchasePrice\nRing,900\n")

    def test_empty_bytes_rejected(self):
        with pytest.raises(ExtractionError):
            CsvExtractor().parse(b"")


# ============================================================================
# Daikichi
# ============================================================================

class TestDaikichiCsvExtractor:
    """Tests for Daikichi listing exports."""

    def test_box_and_row_form_product_id(self, daikichi_csv):
        result = DaikichiCsvExtractor().parse(daikichi_csv)

        assert len(result.items) == 2
        item = result.items[0]
        assert item.product_id == "001-1"
        assert item.name == "LOUIS VUITTON スピーディ30"
        assert item.purchase_price == 10000
        assert item.commission == 1000
        assert item.brand == "LOUIS VUITTON"
        assert item.metadata["rank"] == "A"
        assert item.metadata["genre"] == "バッグ"

    def test_product_number_without_box_columns(self):
        header = "商品番号,商品名,ブランド,数量,商品単価（税別）,買い手数料（税別）"
        data = make_daikichi_csv(['B024-7,エルメス ケリー,HERMES,2,"300,000","30,000"'], header=header)

        result = DaikichiCsvExtractor().parse(data)

        assert result.items[0].product_id == "B024-7"
        assert result.items[0].quantity == 2

    def test_config_override_wins(self):
        data = "品番,品名,単価\nX1,Ring,500\n".encode("cp932")
        config = ParserConfig(mapping={"productId": "品番", "name": "品名", "purchasePrice": "単価"})

        result = DaikichiCsvExtractor().parse(data, config)

        assert result.items[0].product_id == "X1"
        assert result.items[0].purchase_price == 500

    def test_deterministic(self, daikichi_csv):
        extractor = DaikichiCsvExtractor()
        assert extractor.parse(daikichi_csv) == extractor.parse(daikichi_csv)


# ============================================================================
# Otakaraya
# ============================================================================

class TestOtakarayaCsvExtractor:
    """Tests for Otakaraya results exports."""

    @pytest.fixture
    def otakaraya_csv(self) -> bytes:
        header = "ライン,札番,商品ジャンル,ブランド,商品名,宝石名,形状名,カラット数,ランク,落札金額（税抜）,手数料（税抜）,小計（税抜）"
        row = 'L1,T-0042,ジュエリー,TIFFANY,ソリティアリング,ダイヤモンド,ラウンド,0.31,A,"150,000","7,500","157,500"'
        return ("\ufeff" + header + "\n" + row + "\n").encode("utf-8")

    def test_tag_number_is_product_id(self, otakaraya_csv):
        result = OtakarayaCsvExtractor().parse(otakaraya_csv)

        assert len(result.items) == 1
        item = result.items[0]
        assert item.product_id == "T-0042"
        assert item.purchase_price == 150000
        assert item.commission == 7500
        assert item.metadata["gemName"] == "ダイヤモンド"
        assert item.metadata["carat"] == "0.31"
        assert item.metadata["line"] == "L1"


# ============================================================================
# Ecoring
# ============================================================================

class TestEcoringCsvExtractor:
    """Tests for Ecoring buyout exports."""

    @pytest.fixture
    def ecoring_csv(self) -> bytes:
        lines = [
            "buyout_number,receipt_number,item_name,memo,bid_price,bid_price_tax,purchase_commission,purchase_commission_tax,buy_total,image_01,image_02",
            "買取番号,受付番号,商品名,メモ,落札価格,落札価格税,手数料,手数料税,合計,画像1,画像2",
            "B001,R9,(1234_5678) シャネル マトラッセ,傷あり,100000,10000,5000,500,115500,http://img.example/1.jpg,",
        ]
        return "\r\n".join(lines).encode("cp932")

    def test_japanese_header_row_skipped(self, ecoring_csv):
        result = EcoringCsvExtractor().parse(ecoring_csv)
        assert len(result.items) == 1

    def test_fields_and_metadata(self, ecoring_csv):
        item = EcoringCsvExtractor().parse(ecoring_csv).items[0]

        assert item.product_id == "B001"
        assert item.purchase_price == 100000
        assert item.commission == 5000
        assert item.description == "傷あり"
        assert item.metadata["managementNumber"] == "1234_5678"
        assert item.metadata["images"] == ["http://img.example/1.jpg"]
        assert item.metadata["buyTotal"] == 115500


# ============================================================================
# Timeless
# ============================================================================

class TestTimelessExtractor:
    """Tests for the Timeless CSV listing and PDF statement."""

    @pytest.fixture
    def timeless_csv(self) -> bytes:
        lines = [
            "No,商品番号,ブランド名,商品名,付属品,備考,金額(税抜),金額(税込),手数料(税抜),手数料(税込)",
            '1,T-100,CHANEL,マトラッセ,箱,,"100,000","110,000","3,000","3,300"',
            "2,,HERMES,バーキン,,,1,1,1,1",
        ]
        return "\r\n".join(lines).encode("cp932")

    def test_csv_uses_tax_included_columns(self, timeless_csv):
        result = TimelessExtractor().parse(timeless_csv)

        assert len(result.items) == 1
        item = result.items[0]
        assert item.product_id == "T-100"
        assert item.name == "CHANEL マトラッセ"
        assert item.purchase_price == 110000
        assert item.commission == 3300
        assert item.metadata["priceExcludingTax"] == 100000
        assert item.metadata["accessories"] == "箱"
        assert result.invoice_summary is None

    @patch("invoice_recon.csv_extractors.extract_text_from_pdf_bytes")
    def test_pdf_detected_by_signature(self, mock_extract):
        mock_extract.return_value = TIMELESS_STATEMENT_TEXT

        result = TimelessExtractor().parse(b"%PDF-1.7 statement")

        assert result.items == []
        assert result.invoice_summary.total_amount == 736051
        assert result.invoice_summary.subtotal == 711700
        assert result.invoice_summary.participation_fee == 3000

    @patch("invoice_recon.csv_extractors.extract_text_from_pdf_bytes")
    def test_pdf_without_text(self, mock_extract):
        mock_extract.return_value = "  "
        with pytest.raises(ExtractionError):
            TimelessExtractor().parse(b"%PDF-1.7 scanned")

    def test_text_input_rejected(self):
        with pytest.raises(ExtractorInputError):
            TimelessExtractor().parse(TIMELESS_STATEMENT_TEXT)


class TestExtractTimelessSummary:
    """Tests for Timeless statement totals."""

    def test_commission_kept_in_metadata(self):
        summary = extract_timeless_summary(TIMELESS_STATEMENT_TEXT)
        assert summary.metadata["commission"] == 21351

    def test_full_width_parentheses(self):
        summary = extract_timeless_summary("仕入計（税込）1,000\n貴社お支払金額1,100")
        assert summary.subtotal == 1000
        assert summary.total_amount == 1100

    def test_missing_total(self):
        assert extract_timeless_summary("仕入計 (税込)711,700") is None
