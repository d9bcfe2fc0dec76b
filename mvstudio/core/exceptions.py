"""
MV Studio Custom Exceptions

Exception classes for configuration, image data and generation errors.
Provider failures during an attempt are not raised: they are classified
and carried in the generation outcome instead.
"""


class MVStudioError(Exception):
    """Base exception for all MV Studio errors."""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================

class ConfigurationError(MVStudioError):
    """Raised when there's an issue with configuration."""
    pass


class MissingConfigError(ConfigurationError):
    """Raised when a required configuration is missing."""
    pass


class InvalidConfigError(ConfigurationError):
    """Raised when a configuration value is invalid."""
    pass


# =============================================================================
# IMAGE DATA ERRORS
# =============================================================================

class ImageDataError(MVStudioError):
    """Raised when an image payload cannot be decoded or processed."""
    pass


class InvalidCellIndexError(ImageDataError, ValueError):
    """Raised when a grid cell index is outside 1..9."""

    def __init__(self, cell_index: int):
        message = f"Cell index must be between 1 and 9, got {cell_index}"
        super().__init__(message, {"cell_index": cell_index})


# =============================================================================
# GENERATION ERRORS
# =============================================================================

class GenerationError(MVStudioError):
    """Base exception for media generation errors."""
    pass

