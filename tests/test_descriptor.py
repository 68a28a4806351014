"""Tests for images/descriptor.py - update descriptor reading."""

import pytest

from znx.images.descriptor import (
    DESCRIPTOR_LENGTH,
    DESCRIPTOR_OFFSET,
    MissingUpdateInfoError,
    parse_descriptor,
    read_update_locator,
)


def make_image(locator: bytes, tail: bytes = b"payload") -> bytes:
    field = locator.ljust(DESCRIPTOR_LENGTH, b"\x00")
    return b"\x00" * DESCRIPTOR_OFFSET + field + tail


class TestParseDescriptor:
    def test_plain_locator(self):
        assert parse_descriptor(b"https://e.com/os.zsync\x00\x00") == (
            "https://e.com/os.zsync"
        )

    def test_transport_tag(self):
        assert parse_descriptor(b"zsync|https://e.com/os.zsync") == (
            "https://e.com/os.zsync"
        )

    def test_space_padding(self):
        assert parse_descriptor(b"  https://e.com/os.zsync   ") == (
            "https://e.com/os.zsync"
        )

    def test_empty(self):
        assert parse_descriptor(b"\x00" * DESCRIPTOR_LENGTH) == ""
        assert parse_descriptor(b" " * DESCRIPTOR_LENGTH) == ""


class TestReadUpdateLocator:
    def test_fixed_offset(self, tmp_path):
        image = tmp_path / "image.iso"
        image.write_bytes(make_image(b"https://example.com/os.iso.zsync"))
        assert read_update_locator(image) == "https://example.com/os.iso.zsync"

    def test_ignores_bytes_outside_field(self, tmp_path):
        image = tmp_path / "image.iso"
        data = bytearray(make_image(b"http://a/b.zsync", tail=b"XYZ" * 10))
        data[DESCRIPTOR_OFFSET - 1] = ord("!")
        image.write_bytes(bytes(data))
        assert read_update_locator(image) == "http://a/b.zsync"

    def test_empty_field(self, tmp_path):
        image = tmp_path / "image.iso"
        image.write_bytes(make_image(b""))
        with pytest.raises(MissingUpdateInfoError) as exc_info:
            read_update_locator(image)
        assert exc_info.value.error_code == "MISSING_UPDATE_INFO"

    def test_short_file(self, tmp_path):
        image = tmp_path / "image.iso"
        image.write_bytes(b"tiny")
        with pytest.raises(MissingUpdateInfoError):
            read_update_locator(image)
