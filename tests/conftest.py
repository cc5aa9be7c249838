"""
Shared fixtures: in-memory supplier documents and reconciliation setup.
"""

import pytest

from invoice_recon.schemas import RoundingConfig, SourceDocument, SupplierConfig
from invoice_recon.store import InMemoryStore


DAIKICHI_HEADER = "箱番,行番,商品番号,商品名,ブランド,ランク,ジャンル,数量,商品単価（税別）,買い手数料（税別）"


def make_daikichi_csv(rows: list[str], header: str = DAIKICHI_HEADER) -> bytes:
    """Daikichi exports are Shift_JIS encoded."""
    return ("\r\n".join([header, *rows]) + "\r\n").encode("cp932")


APRE_LISTING_TEXT = "\n".join([
    "落 札 明 細",
    "株式会社アプレ",
    "登録番号 T8030001037849",
    "2,500",
    "7",
    "024",
    "1125,000",
    "LOUIS VUITTON モノグラム",
    "スピーディ30",
    "箱",
    "3,000",
    "8",
    "024",
    "1230,000",
    "CHANEL マトラッセ",
    "1 ページ",
    "総計 55,000 5,500",
])

ORE_SLIP_TEXT = "\n".join([
    "御精算書",
    "日本時計オークション",
    "【買い明細】",
    "通番号 商品番号 商品名 落札金額 手数料 料率",
    "1618   18   ｸﾘｽﾁｬﾝﾃﾞｨｵｰﾙ ｼｮﾙﾀﾞｰ   -18,000   -2,430 -13.5%",
    "1619   3   ﾙｲｳﾞｨﾄﾝ ﾓﾉｸﾞﾗﾑ   -120,000   -16,200 -13.5%",
    "買い合計件数 2",
    "9999   1   ｿﾞｰﾝｶﾞｲ   -1,000   -135 -13.5%",
])

REVAAUC_STATEMENT_TEXT = "\n".join([
    "20240115_3請求書No",
    "（A）御落札商品一覧",
    "ロット番号 品名 落札価格 手数料 数量 付属品",
    "【別展】CHANEL マトラッセ",
    "チェーンショルダー¥150,000¥1500011箱",
    "HERMES バーキン30¥1,200,000¥36000101",
    "（B）御出品商品一覧",
    "ROLEX デイトナ¥3,000,000¥30000011",
])


@pytest.fixture
def daikichi_csv() -> bytes:
    """Two lots at 10,000 + 1,000 commission, tax excluded."""
    return make_daikichi_csv([
        '001,1,A-1,LOUIS VUITTON スピーディ30,LOUIS VUITTON,A,バッグ,1,"10,000","1,000"',
        '001,2,A-2,CHANEL マトラッセ,CHANEL,AB,バッグ,1,"10,000","1,000"',
    ])


@pytest.fixture
def excluded_config() -> SupplierConfig:
    """Tax-excluded prices and commission, 10%, {total, floor}."""
    return SupplierConfig(
        product_price_tax_type="excluded",
        commission_tax_type="excluded",
        tax_rate=0.1,
        rounding_config=RoundingConfig(calculation_type="total", rounding_mode="floor"),
    )


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


def csv_document(name: str, content: bytes) -> SourceDocument:
    return SourceDocument(file_id=name, name=name, media_type="text/csv", content=content)


def pdf_document(name: str, content: bytes = b"%PDF-1.4 test") -> SourceDocument:
    return SourceDocument(file_id=name, name=name, media_type="application/pdf", content=content)
