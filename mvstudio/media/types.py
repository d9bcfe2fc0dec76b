"""
Media Types

Value objects shared by the generation pipeline: image payloads, generation
options, per-attempt outcomes and the provenance hierarchy snapshots.
"""

import base64
import hashlib
from dataclasses import dataclass, field
from functools import cached_property
from typing import Optional, Tuple

from mvstudio.core.constants import DEFAULT_MIME_TYPE, MIME_EXTENSIONS, ResolutionTier
from mvstudio.media.error_classifier import ErrorCategory


@dataclass(frozen=True)
class ImagePayload:
    """Raw image bytes plus their MIME type. Identity is the content digest."""
    data: bytes
    mime_type: str = DEFAULT_MIME_TYPE

    @cached_property
    def digest(self) -> str:
        return hashlib.sha256(self.data).hexdigest()

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def extension(self) -> str:
        return MIME_EXTENSIONS.get(self.mime_type, "jpg")

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    def to_data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.to_base64()}"

    def same_image(self, other: Optional["ImagePayload"]) -> bool:
        """Identity compare by content digest."""
        return other is not None and self.digest == other.digest

    def __repr__(self) -> str:
        return f"ImagePayload(mime_type={self.mime_type!r}, size={self.size}, digest={self.digest[:12]})"


@dataclass(frozen=True)
class GenerationOptions:
    """Optional knobs for one generation call."""
    reference_image: Optional[ImagePayload] = None
    style_hint: Optional[str] = None              # Categorical identity hint, e.g. "East Asian woman"
    resolution: ResolutionTier = ResolutionTier.STANDARD
    auxiliary_instruction: Optional[str] = None
    character_description: Optional[str] = None


@dataclass(frozen=True)
class GenerationOutcome:
    """Result of exactly one provider attempt."""
    model: str
    image: Optional[ImagePayload] = None
    category: Optional[ErrorCategory] = None
    message: str = ""

    @property
    def success(self) -> bool:
        return self.image is not None

    @classmethod
    def succeeded(cls, model: str, image: ImagePayload) -> "GenerationOutcome":
        return cls(model=model, image=image)

    @classmethod
    def failed(cls, model: str, category: ErrorCategory, message: str) -> "GenerationOutcome":
        return cls(model=model, category=category, message=message)


# =============================================================================
# PROVENANCE SNAPSHOTS
# =============================================================================

@dataclass(frozen=True)
class Source:
    """An input image the user picked, or a generated artifact fed back in."""
    source_id: str
    label: str
    image: ImagePayload


@dataclass(frozen=True)
class PanelExpansion:
    """High resolution image generated for one cell of a sheet."""
    cell_index: int
    image: ImagePayload


@dataclass(frozen=True)
class Sheet:
    """A generated contact sheet and its expansions, in generation order."""
    sheet_image: ImagePayload
    saved_location: Optional[str] = None
    panels: Tuple[PanelExpansion, ...] = ()

    def panel(self, cell_index: int) -> Optional[PanelExpansion]:
        for expansion in self.panels:
            if expansion.cell_index == cell_index:
                return expansion
        return None


@dataclass(frozen=True)
class SourceGroup:
    """All sheets generated from one source."""
    source: Source
    sheets: Tuple[Sheet, ...] = field(default_factory=tuple)

    @property
    def source_id(self) -> str:
        return self.source.source_id
