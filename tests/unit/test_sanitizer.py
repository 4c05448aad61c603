"""Unit tests for the pure input sanitizers."""

from __future__ import annotations

import base64

import pytest

from app.constants import MAX_LOGO_BYTES
from app.security.sanitizer import (
    sanitize_filename,
    sanitize_identifier_for_path,
    sanitize_text,
    validate_encoded_size,
    validate_image_extension,
)


class TestSanitizeText:
    def test_trims_then_truncates(self) -> None:
        assert sanitize_text("   Swimming relay   ", 8) == "Swimming"

    def test_short_value_unchanged(self) -> None:
        assert sanitize_text("Judo", 100) == "Judo"

    @pytest.mark.parametrize("value", [None, "", "    "])
    def test_empty_input_gives_empty_string(self, value) -> None:
        assert sanitize_text(value, 10) == ""


class TestValidateImageExtension:
    @pytest.mark.parametrize(
        "filename, expected",
        [
            ("photo.png", "png"),
            ("photo.PNG", "png"),
            ("photo.jpeg", "jpeg"),
            ("logo.webp?v=3", "webp"),
            ("logo.jpg#section", "jpg"),
            ("a.exe.png", "png"),
        ],
    )
    def test_accepted(self, filename: str, expected: str) -> None:
        assert validate_image_extension(filename) == expected

    @pytest.mark.parametrize(
        "filename",
        ["photo.exe", "evil.png.exe", "noextension", "", None, "image.gif", "png"],
    )
    def test_rejected(self, filename) -> None:
        assert validate_image_extension(filename) is None


def _b64_of_size(n: int) -> str:
    return base64.b64encode(b"\x00" * n).decode()


class TestValidateEncodedSize:
    def test_boundary_is_inclusive(self) -> None:
        max_bytes = 3 * 1024
        assert validate_encoded_size(_b64_of_size(max_bytes), max_bytes) is True
        assert validate_encoded_size(_b64_of_size(max_bytes + 3), max_bytes) is False

    def test_one_byte_over_rejected(self) -> None:
        max_bytes = 3000
        assert validate_encoded_size(_b64_of_size(max_bytes + 1), max_bytes) is False

    @pytest.mark.parametrize("size", [100, 101, 1024, 1025])
    def test_padded_payload_at_exact_limit(self, size) -> None:
        # sizes not divisible by 3 carry "=" padding
        assert validate_encoded_size(_b64_of_size(size), size) is True
        assert validate_encoded_size(_b64_of_size(size + 1), size) is False

    def test_logo_of_exactly_five_mib_accepted(self) -> None:
        assert validate_encoded_size(_b64_of_size(MAX_LOGO_BYTES)) is True

    def test_logo_one_byte_over_five_mib_rejected(self) -> None:
        assert validate_encoded_size(_b64_of_size(MAX_LOGO_BYTES + 1)) is False

    def test_data_url_prefix_stripped(self) -> None:
        payload = "data:image/png;base64," + _b64_of_size(1200)
        assert validate_encoded_size(payload, 1200) is True

    def test_default_ceiling_is_five_mib(self) -> None:
        assert MAX_LOGO_BYTES == 5 * 1024 * 1024
        assert validate_encoded_size("A" * 4 * 1024) is True

    @pytest.mark.parametrize("payload", [None, "", "data:image/png;base64,"])
    def test_empty_payload_rejected(self, payload) -> None:
        assert validate_encoded_size(payload, 100) is False


class TestSanitizeIdentifierForPath:
    def test_keeps_safe_characters(self) -> None:
        assert sanitize_identifier_for_path("EVT-001") == "EVT-001"

    def test_strips_traversal(self) -> None:
        assert sanitize_identifier_for_path("../../etc/passwd") == "etcpasswd"

    def test_strips_everything_else(self) -> None:
        assert sanitize_identifier_for_path("EVT 001;rm -rf /") == "EVT001rm-rf"

    def test_empty(self) -> None:
        assert sanitize_identifier_for_path(None) == ""


class TestSanitizeFilename:
    def test_drops_directories(self) -> None:
        assert sanitize_filename("../../secret/logo.png") == "logo.png"
        assert sanitize_filename("C:\\Users\\me\\logo.png") == "logo.png"

    def test_strips_leading_dots_and_control_chars(self) -> None:
        assert sanitize_filename("..\x00hidden.png") == "hidden.png"

    def test_caps_length(self) -> None:
        assert len(sanitize_filename("a" * 400 + ".png")) == 255

    def test_empty(self) -> None:
        assert sanitize_filename("") == ""
