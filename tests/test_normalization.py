"""Tests for field list normalization utilities."""

import pytest

from permsync.utils.normalization import (
    compare_field_lists,
    normalize_fields,
    split_fields,
)


class TestNormalizeFieldsBasic:
    """Test basic normalization functionality."""

    def test_none_returns_none(self):
        """None should be returned unchanged."""
        assert normalize_fields(None) is None

    def test_empty_string_returns_empty(self):
        """Empty string should be returned unchanged."""
        assert normalize_fields("") == ""

    def test_fields_sorted(self):
        """Fields should be sorted ascending."""
        assert normalize_fields("title,body,id") == "body,id,title"

    def test_whitespace_stripped(self):
        """Spaces around field names should be removed."""
        assert normalize_fields(" title ,  body ") == "body,title"

    def test_empty_tokens_dropped(self):
        """Empty entries between commas should be dropped."""
        assert normalize_fields("title,,body, ,") == "body,title"

    def test_wildcard_kept(self):
        """The '*' wildcard is a field name like any other."""
        assert normalize_fields("*") == "*"

    def test_only_separators_normalize_to_empty(self):
        """A list of only commas and spaces normalizes to an empty string."""
        assert normalize_fields(" , ,") == ""

    def test_duplicates_kept(self):
        """Duplicate names are preserved; only order and spacing change."""
        assert normalize_fields("b, a, b") == "a,b,b"


class TestNormalizeFieldsEquivalence:
    """Lists naming the same fields normalize to the same string."""

    def test_order_and_spacing_absorbed(self):
        assert normalize_fields("body,title") == normalize_fields("title, body")

    @pytest.mark.parametrize(
        "value",
        [None, "", "*", "title, body", " b , a ,, a ", "x,y,z", ",", "id"],
    )
    def test_idempotent(self, value):
        """Normalizing twice gives the same result as normalizing once."""
        once = normalize_fields(value)
        assert normalize_fields(once) == once


class TestSplitFields:
    """Tests for split_fields."""

    def test_none_gives_empty_list(self):
        assert split_fields(None) == []

    def test_tokens_sorted_and_stripped(self):
        assert split_fields("title , body,id") == ["body", "id", "title"]


class TestCompareFieldLists:
    """Tests for field-level comparison."""

    def test_added_removed_common(self):
        changes = compare_field_lists("id,title,body", "id, summary")
        assert changes.added == ["body", "title"]
        assert changes.removed == ["summary"]
        assert changes.common == ["id"]
        assert changes.has_changes()

    def test_same_fields_have_no_changes(self):
        changes = compare_field_lists("body,title", "title, body")
        assert not changes.has_changes()
        assert changes.common == ["body", "title"]

    def test_none_on_one_side(self):
        changes = compare_field_lists(None, "id")
        assert changes.added == []
        assert changes.removed == ["id"]
