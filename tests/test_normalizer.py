"""
Tests for price and kana normalization.
"""

import pytest

from invoice_recon.normalizer import convert_half_width_to_full_width, normalize_price


class TestNormalizePrice:
    """Tests for price cell normalization."""

    def test_yen_signs_and_separators(self):
        assert normalize_price("¥12,345円") == 12345

    def test_full_width_yen_sign(self):
        assert normalize_price("￥1,000") == 1000

    def test_empty_string_is_zero(self):
        assert normalize_price("") == 0

    def test_garbage_is_zero(self):
        assert normalize_price("なし") == 0

    def test_leading_numeric_prefix(self):
        assert normalize_price("12.5kg") == 12.5

    def test_negative_value(self):
        assert normalize_price("-2,430") == -2430

    def test_numbers_pass_through(self):
        assert normalize_price(1500) == 1500
        assert normalize_price(99.5) == 99.5

    def test_non_string_is_zero(self):
        assert normalize_price(None) == 0
        assert normalize_price(True) == 0

    @pytest.mark.parametrize("value", ["0", "1,234", "¥98,765", "12.75", "1,000,000円"])
    def test_idempotent(self, value):
        once = normalize_price(value)
        assert normalize_price(str(once)) == once


class TestConvertHalfWidthToFullWidth:
    """Tests for half-width katakana conversion."""

    def test_voiced_mark_is_folded(self):
        assert convert_half_width_to_full_width("ｶﾞ") == "ガ"

    def test_semi_voiced_mark_is_folded(self):
        assert convert_half_width_to_full_width("ﾊﾟ") == "パ"

    def test_brand_name(self):
        assert convert_half_width_to_full_width("ｸﾘｽﾁｬﾝﾃﾞｨｵｰﾙ") == "クリスチャンディオール"

    def test_vu(self):
        assert convert_half_width_to_full_width("ﾙｲｳﾞｨﾄﾝ") == "ルイヴィトン"

    def test_mark_without_voiced_form_stays_separate(self):
        assert convert_half_width_to_full_width("ｱﾞ") == "ア゛"

    def test_other_characters_untouched(self):
        assert convert_half_width_to_full_width("ROLEX 126610LN ﾃﾞｲﾄﾅ") == "ROLEX 126610LN デイトナ"

    def test_empty(self):
        assert convert_half_width_to_full_width("") == ""
