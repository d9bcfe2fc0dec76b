"""
MV Studio - Music Video Production Workflow

Resilient media-generation core for the music-video workflow: contact sheet
generation from a still image, per-cell high resolution expansion, scene
images and face swaps, with provenance tracking of every produced artifact.

Version: 1.0.0
"""

__version__ = "1.0.0"
__author__ = "MV Studio Team"
__project__ = "MV Studio"

from pathlib import Path

# Load environment variables early - before any other imports that might need them
from mvstudio.core.env_loader import ensure_env_loaded
ensure_env_loaded()

# Package root directory
PACKAGE_ROOT = Path(__file__).parent
PROJECT_ROOT = PACKAGE_ROOT.parent

__all__ = [
    "__version__",
    "__author__",
    "__project__",
    "PACKAGE_ROOT",
    "PROJECT_ROOT",
]
