"""Tests for images/naming.py."""

from pathlib import PurePosixPath

import pytest

from znx.images.naming import ImageName, InvalidImageNameError


class TestImageName:
    @pytest.mark.parametrize(
        "value", ["nitrux/nitrux", "Vendor_1/os-2", "a/b", "ACME/kiosk_v10"]
    )
    def test_valid(self, value):
        name = ImageName.parse(value)
        assert str(name) == value

    @pytest.mark.parametrize(
        "value",
        [
            "",
            "nitrux",
            "nitrux/",
            "/nitrux",
            "a/b/c",
            "../etc",
            "vendor/..",
            "vendor/na me",
            "vendor/name.iso",
            "vendor\\name",
            "vendor/os\n",
            "\nvendor/os",
            "vendor/os\n\n",
        ],
    )
    def test_invalid(self, value):
        with pytest.raises(InvalidImageNameError) as exc_info:
            ImageName.parse(value)
        assert exc_info.value.error_code == "INVALID_IMAGE_NAME"

    def test_direct_construction_validates(self):
        with pytest.raises(InvalidImageNameError):
            ImageName("vendor", "..")

    def test_direct_construction_rejects_trailing_newline(self):
        with pytest.raises(InvalidImageNameError):
            ImageName("vendor", "os\n")

    def test_relative_path(self):
        assert ImageName.parse("acme/os").relative_path == PurePosixPath("acme/os")

    def test_ordering_and_equality(self):
        names = [ImageName.parse("b/a"), ImageName.parse("a/z"), ImageName.parse("a/b")]
        assert [str(n) for n in sorted(names)] == ["a/b", "a/z", "b/a"]
        assert ImageName.parse("a/b") == ImageName("a", "b")
