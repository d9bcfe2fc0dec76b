"""
Tests for Image Preprocessor

Tests for mvstudio/media/image_preprocessor.py
"""

import base64
import io

import pytest
from PIL import Image

from mvstudio.core.exceptions import ImageDataError, InvalidCellIndexError
from mvstudio.media.image_preprocessor import (
    cell_bounds,
    compress_image,
    crop_cell,
    decode_data_url,
    image_dimensions,
    is_valid_base64,
    parse_data_url,
    to_payload,
)
from mvstudio.media.types import ImagePayload


def open_payload(payload: ImagePayload) -> Image.Image:
    return Image.open(io.BytesIO(payload.data))


class TestParseDataUrl:
    """Tests for data URL parsing."""

    def test_data_url_with_whitespace(self):
        """Test whitespace inside the payload is stripped."""
        data, mime = parse_data_url("data:image/png;base64,AAAA\nBBBB CCCC\r\n")

        assert data == "AAAABBBBCCCC"
        assert mime == "image/png"

    def test_bare_base64_defaults_to_jpeg(self):
        """Test a plain base64 string gets the default type."""
        data, mime = parse_data_url("QUJDRA==")

        assert data == "QUJDRA=="
        assert mime == "image/jpeg"

    def test_unsupported_type_defaults_to_jpeg(self):
        """Test unsupported MIME types fall back to jpeg."""
        _, mime = parse_data_url("data:image/gif;base64,QUJD")

        assert mime == "image/jpeg"


class TestValidation:
    """Tests for base64 plausibility checks."""

    def test_too_short(self):
        assert not is_valid_base64("QUJD" * 10)

    def test_illegal_characters_in_sample(self):
        assert not is_valid_base64("!!" + "A" * 200)

    def test_valid(self):
        assert is_valid_base64("A" * 120)

    def test_decode_round_trip(self, grid_image):
        """Test decoding a data URL restores the payload."""
        decoded = decode_data_url(grid_image.to_data_url())

        assert decoded == grid_image

    def test_decode_rejects_garbage(self):
        """Test undecodable input raises ImageDataError."""
        with pytest.raises(ImageDataError):
            decode_data_url("data:image/png;base64,short")

    def test_to_payload_sniffs_png_bytes(self, grid_image):
        """Test raw PNG bytes are recognized."""
        payload = to_payload(grid_image.data)

        assert payload.mime_type == "image/png"


class TestCellBounds:
    """Tests for grid cell geometry."""

    @pytest.mark.parametrize("index,expected", [
        (1, (0, 0, 100, 100)),
        (2, (100, 0, 100, 100)),
        (3, (200, 0, 100, 100)),
        (4, (0, 100, 100, 100)),
        (5, (100, 100, 100, 100)),
        (6, (200, 100, 100, 100)),
        (7, (0, 200, 100, 100)),
        (8, (100, 200, 100, 100)),
        (9, (200, 200, 100, 100)),
    ])
    def test_bounds_square_grid(self, index, expected):
        """Test every cell of a 300x300 grid."""
        assert cell_bounds(300, 300, index) == expected

    def test_bounds_use_integer_division(self):
        """Test dimensions not divisible by three are floored."""
        assert cell_bounds(301, 302, 9) == (200, 200, 100, 100)
        assert cell_bounds(1920, 1080, 6) == (1280, 360, 640, 360)

    @pytest.mark.parametrize("index", [0, 10, -1])
    def test_invalid_index(self, index):
        """Test indices outside 1..9 raise ValueError."""
        with pytest.raises(ValueError):
            cell_bounds(300, 300, index)

    def test_invalid_index_is_image_error(self):
        """Test the error also belongs to the image error family."""
        with pytest.raises(InvalidCellIndexError):
            cell_bounds(300, 300, 11)


class TestCropCell:
    """Tests for cropping a cell out of a contact sheet."""

    def test_crop_extracts_cell(self, grid_image, cell_colors):
        """Test each cropped cell has its own color."""
        for index in (1, 5, 9):
            cell = crop_cell(grid_image, index)
            image = open_payload(cell)

            assert image.size == (100, 100)
            assert image.convert("RGB").getpixel((50, 50)) == cell_colors[index - 1]

    def test_crop_keeps_png(self, grid_image):
        """Test PNG sheets produce PNG cells."""
        assert crop_cell(grid_image, 2).mime_type == "image/png"

    def test_crop_uneven_sheet(self, make_grid):
        """Test a sheet with uneven dimensions."""
        cell = crop_cell(make_grid(301, 302), 9)

        assert image_dimensions(cell) == (100, 100)

    def test_crop_invalid_index(self, grid_image):
        with pytest.raises(ValueError):
            crop_cell(grid_image, 0)

    def test_crop_undecodable(self):
        """Test non-image bytes raise ImageDataError."""
        with pytest.raises(ImageDataError):
            crop_cell(ImagePayload(data=b"not an image" * 20), 1)


class TestCompressImage:
    """Tests for downscale and re-encode."""

    def test_small_jpeg_unchanged(self, source_image):
        """Test a small JPEG is passed through."""
        assert compress_image(source_image) is source_image

    def test_large_png_downscaled(self, make_image):
        """Test a large PNG is resized to fit and re-encoded as JPEG."""
        compressed = compress_image(make_image(3072, 1536))

        assert compressed.mime_type == "image/jpeg"
        assert image_dimensions(compressed) == (1536, 768)

    def test_never_enlarges(self, make_image):
        """Test small non-JPEG images keep their size."""
        compressed = compress_image(make_image(64, 36))

        assert compressed.mime_type == "image/jpeg"
        assert image_dimensions(compressed) == (64, 36)

    def test_undecodable_returned_unchanged(self):
        """Test undecodable data is returned as is."""
        payload = ImagePayload(data=base64.b64decode("QUJD" * 40), mime_type="image/png")

        assert compress_image(payload) is payload
