"""
Environment loading for MV Studio.

The .env file is read once per process. The working directory is searched
first, then the project root.

Usage:
    from mvstudio.core.env_loader import ensure_env_loaded
    ensure_env_loaded()
"""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

GEMINI_KEY_VARIABLES = ("GEMINI_API_KEY", "GOOGLE_API_KEY")

_loaded_from: Optional[Path] = None


def candidate_env_files() -> list:
    """.env locations in lookup order."""
    project_root = Path(__file__).resolve().parent.parent.parent
    candidates = [Path.cwd() / ".env", project_root / ".env"]
    unique = []
    for path in candidates:
        if path not in unique:
            unique.append(path)
    return unique


def ensure_env_loaded() -> Optional[Path]:
    """
    Load the first .env file found, once.

    Variables already set in the process environment win over the file.

    Returns:
        Path of the loaded file, or None if there is none
    """
    global _loaded_from

    if _loaded_from is not None:
        return _loaded_from

    for env_path in candidate_env_files():
        if env_path.is_file():
            load_dotenv(env_path, override=False)
            _loaded_from = env_path
            break
    return _loaded_from


def first_env_value(*names: str) -> Optional[str]:
    """Return the first non-blank value among the given variables."""
    ensure_env_loaded()
    for name in names:
        value = (os.getenv(name) or "").strip()
        if value:
            return value
    return None


def get_gemini_api_key() -> Optional[str]:
    """Gemini API key from GEMINI_API_KEY, then GOOGLE_API_KEY."""
    return first_env_value(*GEMINI_KEY_VARIABLES)
