"""Unit tests for dataroom.tree.paths — Slugs and materialized paths."""

import pytest

from dataroom.tree.paths import (
    ROOT_PATH,
    child_path,
    find_path_mismatches,
    is_descendant_path,
    normalize_parent_path,
    rebase_path,
    reconstruct_paths,
    slugify,
    unique_child_path,
)


class TestSlugify:
    @pytest.mark.parametrize("name,expected", [
        ("Finance", "finance"),
        ("Legal and Tax Documents", "legal-and-tax-documents"),
        ("Über Café", "uber-cafe"),
        ("R&D", "r-and-d"),
        ("ProductRoadmap", "product-roadmap"),
        ("  Q3 -- 2024 / Final  ", "q3-2024-final"),
        ("1 Introduction", "1-introduction"),
        ("", "untitled"),
        ("!!!", "untitled"),
    ])
    def test_slugify(self, name, expected):
        assert slugify(name) == expected

    def test_none(self):
        assert slugify(None) == "untitled"


class TestPathHelpers:
    @pytest.mark.parametrize("raw", [None, "", "/"])
    def test_root_aliases(self, raw):
        assert normalize_parent_path(raw) == ROOT_PATH

    def test_normalize_adds_leading_slash(self):
        assert normalize_parent_path("a/b/") == "/a/b"

    def test_child_path_root(self):
        assert child_path(None, "Finance") == "/finance"
        assert child_path("/", "Finance") == "/finance"

    def test_child_path_nested(self):
        assert child_path("/finance", "Q1 Reports") == "/finance/q1-reports"

    def test_is_descendant_path(self):
        assert is_descendant_path("/a/b", "/a")
        assert is_descendant_path("/a/b/c", "/a")
        assert not is_descendant_path("/a", "/a")
        assert not is_descendant_path("/ab", "/a")
        assert is_descendant_path("/a", "/")

    def test_rebase_keeps_suffix(self):
        assert rebase_path("/a/b/c/d", "/a/b", "/x/y") == "/x/y/c/d"
        assert rebase_path("/a/b", "/a/b", "/x/y") == "/x/y"

    def test_rebase_rejects_foreign_path(self):
        with pytest.raises(ValueError):
            rebase_path("/ab/c", "/a", "/x")

    def test_unique_child_path(self):
        taken = {"/reports"}
        assert unique_child_path("/", "Reports", taken) == "/reports-2"
        assert unique_child_path("/", "reports", taken) == "/reports-3"
        assert unique_child_path("/", "Annex", taken) == "/annex"
        assert {"/reports-2", "/reports-3", "/annex"} <= taken


class TestReconstruction:
    def test_reconstruct_from_parent_chain(self):
        paths = reconstruct_paths([
            ("c", "Child", "b"),
            ("a", "Top", None),
            ("b", "Middle", "a"),
        ])
        assert paths == {"a": "/top", "b": "/top/middle", "c": "/top/middle/child"}

    def test_broken_chain_and_cycle(self):
        paths = reconstruct_paths([
            ("a", "A", "missing"),
            ("b", "B", "a"),
            ("x", "X", "y"),
            ("y", "Y", "x"),
        ])
        assert paths == {"a": None, "b": None, "x": None, "y": None}

    def test_find_path_mismatches(self):
        rows = [
            ("a", "Top", None, "/top"),
            ("b", "Middle", "a", "/old/middle"),
        ]
        assert find_path_mismatches(rows) == [("b", "/old/middle", "/top/middle")]

    def test_consistent_tree_has_no_mismatch(self):
        rows = [("a", "Top", None, "/top"), ("b", "Sub", "a", "/top/sub")]
        assert find_path_mismatches(rows) == []
