"""Tests for text, brand and GTIN normalization."""

from __future__ import annotations

import pytest

from catalink.core.matching.normalize import (
    compact,
    normalize_brand,
    normalize_gtin,
    normalize_text,
    strip_diacritics,
    tokenize,
)


class TestNormalizeText:
    def test_case_and_punctuation(self) -> None:
        assert normalize_text("UPPAbaby Vista-V2 Stroller - Black") == "uppababy vista v2 stroller black"

    def test_trademark_marks_removed(self) -> None:
        assert normalize_text("Cybex™ Priam®") == "cybex priam"

    def test_diacritics(self) -> None:
        assert strip_diacritics("Bébé Confort") == "Bebe Confort"
        assert normalize_text("Bébé Confort") == "bebe confort"

    @pytest.mark.parametrize("value", [None, "", "   ", "---"])
    def test_empty(self, value: str | None) -> None:
        assert normalize_text(value) == ""
        assert tokenize(value) == []

    def test_tokenize_and_compact(self) -> None:
        assert tokenize("Fox 3  Complete") == ["fox", "3", "complete"]
        assert compact("fox 3") == "fox3"


class TestNormalizeBrand:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("UPPAbaby", "uppababy"),
            ("Upp-a-baby", "uppababy"),
            ("UPPA baby", "uppababy"),
            ("Bugaboo Inc.", "bugaboo"),
            ("Joie Ltd", "joie"),
        ],
    )
    def test_variants_collapse(self, raw: str, expected: str) -> None:
        assert normalize_brand(raw) == expected

    def test_suffix_alone_is_kept(self) -> None:
        assert normalize_brand("Co") == "co"

    def test_empty(self) -> None:
        assert normalize_brand(None) == ""


class TestNormalizeGtin:
    def test_upc_and_ean_compare_equal(self) -> None:
        assert normalize_gtin("810030040051") == normalize_gtin("0810030040051")
        assert normalize_gtin("810030040051") == "00810030040051"

    def test_separators_ignored(self) -> None:
        assert normalize_gtin("8100-3004-0051") == "00810030040051"

    @pytest.mark.parametrize("value", [None, "", "12345", "not a gtin", "123456789012345"])
    def test_invalid_is_absent(self, value: str | None) -> None:
        assert normalize_gtin(value) is None
