"""
MV Studio Configuration Management

Centralized configuration with JSON loading, environment fallbacks and
validation.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from .constants import (
    DEFAULT_ASPECT_RATIO,
    DEFAULT_IMAGE_MODELS,
    FACE_SWAP_MODELS,
    GEMINI_BASE_URL,
    OUTPUT_DIR,
)
from .env_loader import get_gemini_api_key
from .exceptions import ConfigurationError, InvalidConfigError
from .retry import RetryConfig

DEFAULT_CONFIG_PATH = Path("config/mvstudio_config.json")
DEFAULT_SETTINGS_PATH = Path("config/settings.json")


@dataclass
class GenerationConfig:
    """Provider and model settings for image generation."""
    models: List[str] = field(default_factory=lambda: list(DEFAULT_IMAGE_MODELS))
    face_swap_models: List[str] = field(default_factory=lambda: list(FACE_SWAP_MODELS))
    base_url: str = GEMINI_BASE_URL
    aspect_ratio: str = DEFAULT_ASPECT_RATIO
    timeout: float = 120.0

    @classmethod
    def from_dict(cls, data: dict) -> 'GenerationConfig':
        """Create GenerationConfig from dictionary."""
        defaults = cls()
        models = data.get('models', defaults.models)
        if not isinstance(models, list) or not all(isinstance(m, str) for m in models):
            raise InvalidConfigError("generation.models must be a list of model ids", {"models": models})
        face_swap_models = data.get('face_swap_models', defaults.face_swap_models)
        return cls(
            models=list(models),
            face_swap_models=list(face_swap_models),
            base_url=data.get('base_url', defaults.base_url),
            aspect_ratio=data.get('aspect_ratio', defaults.aspect_ratio),
            timeout=float(data.get('timeout', defaults.timeout)),
        )


@dataclass
class PathsConfig:
    """Filesystem locations."""
    config_dir: Path = field(default_factory=lambda: Path("config"))
    output_dir: Path = field(default_factory=lambda: Path(OUTPUT_DIR))
    logs_dir: Path = field(default_factory=lambda: Path("logs"))


@dataclass
class StudioConfig:
    """Main configuration class for MV Studio."""

    project_name: str = "MV Studio"
    version: str = "1.0.0"

    api_key: Optional[str] = None

    generation: GenerationConfig = field(default_factory=GenerationConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    paths: PathsConfig = field(default_factory=PathsConfig)

    verbose_logging: bool = False
    save_artifacts: bool = True

    @property
    def prompts_path(self) -> Path:
        return self.paths.config_dir / "prompts.json"

    @classmethod
    def from_dict(cls, data: dict) -> 'StudioConfig':
        """Create StudioConfig from dictionary."""
        config = cls()

        config.project_name = data.get('project_name', config.project_name)
        config.version = data.get('version', config.version)
        config.api_key = data.get('api_key') or None
        config.verbose_logging = data.get('verbose_logging', config.verbose_logging)
        config.save_artifacts = data.get('save_artifacts', config.save_artifacts)

        if 'generation' in data:
            config.generation = GenerationConfig.from_dict(data['generation'])

        if 'retry' in data:
            config.retry = RetryConfig.from_dict(data['retry'])

        if 'paths' in data:
            paths = data['paths']
            config.paths = PathsConfig(
                config_dir=Path(paths.get('config_dir', 'config')),
                output_dir=Path(paths.get('output_dir', OUTPUT_DIR)),
                logs_dir=Path(paths.get('logs_dir', 'logs')),
            )

        return config

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-serializable dict. The API key is never written out."""
        return {
            'project_name': self.project_name,
            'version': self.version,
            'verbose_logging': self.verbose_logging,
            'save_artifacts': self.save_artifacts,
            'generation': {
                'models': list(self.generation.models),
                'face_swap_models': list(self.generation.face_swap_models),
                'base_url': self.generation.base_url,
                'aspect_ratio': self.generation.aspect_ratio,
                'timeout': self.generation.timeout,
            },
            'retry': self.retry.to_dict(),
            'paths': {
                'config_dir': str(self.paths.config_dir),
                'output_dir': str(self.paths.output_dir),
                'logs_dir': str(self.paths.logs_dir),
            },
        }

    def resolve_api_key(self) -> Optional[str]:
        """
        Resolve the Gemini API key.

        Order: explicit config value, settings.json `geminiApiKey`,
        GEMINI_API_KEY, GOOGLE_API_KEY.
        """
        if self.api_key:
            return self.api_key
        settings_key = read_settings_api_key(self.paths.config_dir / "settings.json")
        if settings_key:
            return settings_key
        return get_gemini_api_key()


def read_settings_api_key(settings_path: Path) -> Optional[str]:
    """Read `geminiApiKey` from the UI settings file, if present."""
    settings_path = Path(settings_path)
    if not settings_path.exists():
        return None
    try:
        settings = json.loads(settings_path.read_text(encoding='utf-8'))
    except json.JSONDecodeError:
        return None
    value = settings.get('geminiApiKey') if isinstance(settings, dict) else None
    return value.strip() if isinstance(value, str) and value.strip() else None


def load_config(config_path: Path = None) -> StudioConfig:
    """
    Load configuration from JSON file.

    Args:
        config_path: Path to configuration file. If None, uses default.

    Returns:
        Loaded StudioConfig instance (defaults when the file is missing)
    """
    config_path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH

    if not config_path.exists():
        return StudioConfig()

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise InvalidConfigError(f"Invalid JSON in config file: {e}", {"path": str(config_path)})
    except OSError as e:
        raise ConfigurationError(f"Failed to load config: {e}", {"path": str(config_path)})

    return StudioConfig.from_dict(data)


def save_config(config: StudioConfig, config_path: Path = None) -> None:
    """Save configuration to JSON file."""
    config_path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, 'w', encoding='utf-8') as f:
        json.dump(config.to_dict(), f, indent=2)


def get_default_config() -> StudioConfig:
    """Get a default configuration instance."""
    return StudioConfig()


# Global config instance
_config: Optional[StudioConfig] = None


def get_config() -> StudioConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def set_config(config: StudioConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
