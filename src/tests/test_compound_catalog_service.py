"""Tests for the compound catalog service."""

from decimal import Decimal

import pytest

from src.services.compound_catalog_service import (
    create_compound_master,
    get_compound_master,
    list_compound_masters,
    normalize_compound_code,
    resolve_compound_code,
)
from src.services.exceptions import CompoundMasterNotFoundError, ValidationError


class TestNormalizeCompoundCode:
    @pytest.mark.parametrize(
        "name, expected",
        [("Nk-5", "nk5"), ("NK-8", "nk8"), ("nk1", "nk1"), (" Sk-2 ", "sk2"), ("", "")],
    )
    def test_normalize(self, name, expected):
        assert normalize_compound_code(name) == expected


class TestCreateCompoundMaster:
    def test_create(self, test_db):
        master = create_compound_master("nk5", "Nk-5", "90", category="cover")
        assert master["compound_code"] == "nk5"
        assert master["compound_name"] == "Nk-5"
        assert Decimal(master["default_weight_per_batch"]) == Decimal("90")

    def test_duplicate_code_rejected(self, catalog):
        with pytest.raises(ValidationError) as exc_info:
            create_compound_master("nk5", "Other", "10")
        assert "already exists" in str(exc_info.value)

    def test_invalid_input_collects_all_errors(self, test_db):
        with pytest.raises(ValidationError) as exc_info:
            create_compound_master("", "", "-5", category="tread")
        assert len(exc_info.value.errors) == 4


class TestCatalogQueries:
    def test_get_unknown_raises(self, test_db):
        with pytest.raises(CompoundMasterNotFoundError):
            get_compound_master("zz9")

    def test_list_by_category(self, catalog):
        codes = [m["compound_code"] for m in list_compound_masters(category="cover")]
        assert codes == ["nk5", "nk8"]
        assert len(list_compound_masters()) == 3

    def test_resolve_by_code(self, catalog):
        assert resolve_compound_code("sk2") == "sk2"

    def test_resolve_by_display_name(self, catalog):
        assert resolve_compound_code("NK-8") == "nk8"

    def test_resolve_unknown_name_normalises(self, catalog):
        """Unknown names fall back to the normalised code."""
        assert resolve_compound_code("Nk-12") == "nk12"

    def test_resolve_empty_rejected(self, catalog):
        with pytest.raises(ValidationError):
            resolve_compound_code("  ")
