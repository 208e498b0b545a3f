# ==============================================================================
# Tests for Input Sanitization
# ==============================================================================
"""
Tests for tracking code validation and field sanitizers.
"""

from postmetric.core.sanitize import (
    MAX_PATH_LENGTH,
    hash_path,
    is_valid_tracking_code,
    sanitize_path,
    sanitize_text,
    sanitize_title,
)


class TestTrackingCode:
    """Tests for is_valid_tracking_code()."""

    def test_accepts_24_lowercase_hex(self):
        assert is_valid_tracking_code("a1b2c3d4e5f6a7b8c9d0e1f2")

    def test_rejects_uppercase(self):
        assert not is_valid_tracking_code("A1B2C3D4E5F6A7B8C9D0E1F2")

    def test_rejects_wrong_length(self):
        assert not is_valid_tracking_code("a1b2c3")
        assert not is_valid_tracking_code("a1b2c3d4e5f6a7b8c9d0e1f2aa")

    def test_rejects_empty_and_none(self):
        assert not is_valid_tracking_code("")
        assert not is_valid_tracking_code(None)

    def test_rejects_non_hex(self):
        assert not is_valid_tracking_code("g1b2c3d4e5f6a7b8c9d0e1f2")


class TestSanitizeText:
    """Tests for sanitize_text()."""

    def test_strips_control_characters(self):
        assert sanitize_text("/a\u0000b\u0007c", 100) == "/abc"

    def test_truncates_to_max_length(self):
        assert sanitize_text("x" * 600, 500) == "x" * 500

    def test_empty_becomes_none(self):
        assert sanitize_text("", 10) is None
        assert sanitize_text(None, 10) is None

    def test_only_control_characters_becomes_none(self):
        assert sanitize_text("\u0000\u001f", 10) is None

    def test_keeps_unicode(self):
        assert sanitize_text("Café ☕", 20) == "Café ☕"


class TestSanitizePath:
    """Tests for sanitize_path() and sanitize_title()."""

    def test_missing_path_is_root(self):
        assert sanitize_path(None) == "/"
        assert sanitize_path("") == "/"

    def test_long_path_truncated(self):
        path = "/" + "a" * 2999
        assert len(sanitize_path(path)) == MAX_PATH_LENGTH

    def test_title_truncated_to_500(self):
        assert len(sanitize_title("t" * 1000)) == 500

    def test_title_missing_is_none(self):
        assert sanitize_title(None) is None


class TestHashPath:
    """Tests for hash_path()."""

    def test_stable(self):
        assert hash_path("/pricing") == hash_path("/pricing")

    def test_differs_per_path(self):
        assert hash_path("/pricing") != hash_path("/about")

    def test_format(self):
        hashed = hash_path("/pricing")
        assert hashed.startswith("#")
        assert len(hashed) == 17
