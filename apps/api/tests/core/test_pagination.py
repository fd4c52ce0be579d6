"""
Unit tests for shared pagination helpers.
"""

from rtb_assets.modules.shared.pagination import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    PaginationParams,
    build_meta,
    normalize,
)


class TestNormalize:
    """Tests for normalize."""

    def test_defaults_when_missing(self):
        assert normalize(None, None) == (1, DEFAULT_PAGE_SIZE)

    def test_clamps_page_and_limit(self):
        assert normalize(0, 0) == (1, DEFAULT_PAGE_SIZE)
        assert normalize(-3, 5) == (1, 5)
        assert normalize(2, MAX_PAGE_SIZE + 50) == (2, MAX_PAGE_SIZE)


class TestBuildMeta:
    """Tests for build_meta."""

    def test_middle_page(self):
        meta = build_meta(page=2, limit=10, total=35)
        assert meta.total_pages == 4
        assert meta.has_next_page is True
        assert meta.has_previous_page is True

    def test_last_page(self):
        meta = build_meta(page=4, limit=10, total=35)
        assert meta.has_next_page is False
        assert meta.has_previous_page is True

    def test_empty_result(self):
        """No rows means zero pages and no neighbours."""
        meta = build_meta(page=1, limit=10, total=0)
        assert meta.total_pages == 0
        assert meta.has_next_page is False
        assert meta.has_previous_page is False


class TestPaginationParams:
    def test_offset(self):
        assert PaginationParams(page=3, limit=20).offset == 40
