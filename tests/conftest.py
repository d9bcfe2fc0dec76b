"""
Pytest Configuration and Fixtures

Shared fixtures for all tests.
"""

import io
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pytest
from PIL import Image

from mvstudio.media.error_classifier import ErrorCategory
from mvstudio.media.types import GenerationOutcome, ImagePayload

# One distinct color per grid cell, row-major
CELL_COLORS = [
    (255, 0, 0), (0, 255, 0), (0, 0, 255),
    (255, 255, 0), (0, 255, 255), (255, 0, 255),
    (128, 0, 0), (0, 128, 0), (0, 0, 128),
]


def render_image(width: int, height: int, color=(200, 200, 200), fmt: str = "PNG") -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format=fmt)
    return buffer.getvalue()


def render_grid(width: int, height: int) -> bytes:
    image = Image.new("RGB", (width, height))
    cell_w, cell_h = width // 3, height // 3
    for index, color in enumerate(CELL_COLORS):
        col, row = index % 3, index // 3
        image.paste(color, (col * cell_w, row * cell_h, col * cell_w + cell_w, row * cell_h + cell_h))
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


@dataclass
class RecordedCall:
    """One call made to a fake generation client."""
    model: str
    instruction: str
    images: Tuple[ImagePayload, ...]
    aspect_ratio: str
    image_size: Optional[str]


class FakeGenerationClient:
    """
    Stands in for MediaGenerationClient.

    `responder` is either a list of outcomes handed out in order, or a
    callable taking the RecordedCall and returning an outcome.
    """

    def __init__(self, responder):
        self.calls: List[RecordedCall] = []
        self._responder = responder

    async def generate(self, model, instruction, images=(), *, aspect_ratio="16:9", image_size=None):
        call = RecordedCall(model, instruction, tuple(images), aspect_ratio, image_size)
        self.calls.append(call)
        if callable(self._responder):
            outcome = self._responder(call)
        else:
            outcome = self._responder.pop(0)
        return GenerationOutcome(
            model=model,
            image=outcome.image,
            category=outcome.category,
            message=outcome.message,
        )


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    temp_path = tempfile.mkdtemp()
    yield Path(temp_path)
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def cell_colors() -> List[Tuple[int, int, int]]:
    return list(CELL_COLORS)


@pytest.fixture
def grid_image() -> ImagePayload:
    """A 300x300 PNG contact sheet with a solid color per cell."""
    return ImagePayload(data=render_grid(300, 300), mime_type="image/png")


@pytest.fixture
def source_image() -> ImagePayload:
    return ImagePayload(data=render_image(64, 36, (90, 120, 150), fmt="JPEG"), mime_type="image/jpeg")


@pytest.fixture
def reference_image() -> ImagePayload:
    return ImagePayload(data=render_image(48, 48, (10, 20, 30), fmt="JPEG"), mime_type="image/jpeg")


@pytest.fixture
def result_image() -> ImagePayload:
    return ImagePayload(data=render_image(32, 18, (250, 240, 230), fmt="JPEG"), mime_type="image/jpeg")


@pytest.fixture
def make_image():
    """Factory for solid-color images of any size."""
    def _make(width: int, height: int, color=(200, 200, 200), fmt: str = "PNG") -> ImagePayload:
        mime = "image/png" if fmt == "PNG" else "image/jpeg"
        return ImagePayload(data=render_image(width, height, color, fmt), mime_type=mime)
    return _make


@pytest.fixture
def make_grid():
    """Factory for colored 3x3 grids of any size."""
    def _make(width: int, height: int) -> ImagePayload:
        return ImagePayload(data=render_grid(width, height), mime_type="image/png")
    return _make


@pytest.fixture
def fake_client():
    """Factory for FakeGenerationClient."""
    return FakeGenerationClient


@pytest.fixture
def success(result_image):
    """Build a successful outcome."""
    def _success(model: str = "fake-model") -> GenerationOutcome:
        return GenerationOutcome.succeeded(model, result_image)
    return _success


@pytest.fixture
def failure():
    """Build a failed outcome of a given category."""
    def _failure(category: ErrorCategory, message: str = "", model: str = "fake-model") -> GenerationOutcome:
        return GenerationOutcome.failed(model, category, message or f"{category.value} failure")
    return _failure


@pytest.fixture
def recording_sleep():
    """Async sleep replacement that records requested waits."""
    waits: List[float] = []

    async def _sleep(seconds: float) -> None:
        waits.append(seconds)

    _sleep.waits = waits
    return _sleep


@pytest.fixture
def sample_config() -> Dict[str, Any]:
    """Sample configuration for testing."""
    return {
        "project_name": "MV Studio",
        "version": "1.0.0",
        "generation": {
            "models": ["model-a", "model-b"],
            "timeout": 30,
        },
        "retry": {
            "short_backoff_seconds": 1,
            "long_backoff_seconds": 2,
        },
        "paths": {
            "output_dir": "out",
        },
    }
