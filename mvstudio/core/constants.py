"""
MV Studio Constants

Model identifiers, grid geometry and output conventions shared across modules.
"""

from enum import Enum


class ResolutionTier(Enum):
    """Output resolution tiers understood by the image models."""
    STANDARD = "2K"
    HIGH = "4K"

    @classmethod
    def parse(cls, value) -> "ResolutionTier":
        """Parse a tier from '2K'/'4K' (any case); unknown values fall back to 2K."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str) and value.strip().upper() == cls.HIGH.value:
            return cls.HIGH
        return cls.STANDARD


class ArtifactType(Enum):
    """Kinds of persisted artifacts. Values are the filename prefixes."""
    CONTACT_SHEET = "contact"
    PANEL = "panel"
    SCENE = "scene"
    FACE_SWAP = "faceswap"


# =============================================================================
# MODELS
# =============================================================================

GEMINI_FLASH_IMAGE = "gemini-2.5-flash-image"
GEMINI_PRO_IMAGE = "gemini-3-pro-image-preview"

# Ordered: first entry is also the model used by the backoff retries
DEFAULT_IMAGE_MODELS = [GEMINI_FLASH_IMAGE, GEMINI_PRO_IMAGE]
FACE_SWAP_MODELS = [GEMINI_PRO_IMAGE, GEMINI_FLASH_IMAGE]

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"

# Contact sheets are requested at the provider's smallest tier
CONTACT_SHEET_IMAGE_SIZE = "1K"
DEFAULT_ASPECT_RATIO = "16:9"

HARM_CATEGORIES = [
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
    "HARM_CATEGORY_HARASSMENT",
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_CIVIC_INTEGRITY",
]
PERMISSIVE_THRESHOLD = "OFF"

# =============================================================================
# GRID GEOMETRY
# =============================================================================

GRID_ROWS = 3
GRID_COLUMNS = 3
PANEL_COUNT = GRID_ROWS * GRID_COLUMNS

# =============================================================================
# IMAGE DATA
# =============================================================================

DEFAULT_MIME_TYPE = "image/jpeg"
SUPPORTED_MIME_TYPES = {"image/jpeg", "image/png", "image/webp"}
MIME_EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
}

MIN_BASE64_LENGTH = 100
BASE64_SAMPLE_LENGTH = 64

COMPRESS_THRESHOLD_BYTES = int(1.5 * 1024 * 1024)
COMPRESS_MAX_DIMENSION = 1536
COMPRESS_JPEG_QUALITY = 85

# =============================================================================
# OUTPUT LAYOUT
# =============================================================================

OUTPUT_DIR = "output"
GRID_OUTPUT_SUBDIR = "grid"
SCENE_OUTPUT_SUBDIR = "scene"
IMAGE_SUBDIR = "IMAGE"
TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"
