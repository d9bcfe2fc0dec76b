"""
Artifact Writer

Persists generated images using the naming convention downstream steps
read back:

    <base>/IMAGE/contact_<ts>.<ext>
    <base>/IMAGE/panel_<NN>_<tier>_<ts>.<ext>
    <base>/IMAGE/scene_<ts>.<ext>
    <base>/IMAGE/faceswap_<ts>.<ext>

Without a base directory, each save gets its own run directory under the
configured output root, e.g. output/grid/<ts>/contact.<ext>.
"""

import re
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional, Union

from mvstudio.core.constants import (
    GRID_OUTPUT_SUBDIR,
    IMAGE_SUBDIR,
    OUTPUT_DIR,
    SCENE_OUTPUT_SUBDIR,
    TIMESTAMP_FORMAT,
    ArtifactType,
    ResolutionTier,
)
from mvstudio.core.logging_config import get_logger
from mvstudio.media.types import ImagePayload

logger = get_logger("media.artifacts")

PathLike = Union[str, Path]

_SAFE_FILENAME = re.compile(r"^[\w.-]+$")


class ArtifactWriter:
    """Writes generated images to disk."""

    def __init__(self, output_dir: PathLike = OUTPUT_DIR, clock: Callable[[], datetime] = datetime.now):
        self.output_dir = Path(output_dir)
        self._clock = clock

    def timestamp(self) -> str:
        return self._clock().strftime(TIMESTAMP_FORMAT)

    def save_contact_sheet(self, image: ImagePayload, base_dir: Optional[PathLike] = None) -> Path:
        ts = self.timestamp()
        if base_dir:
            path = self._image_dir(base_dir) / f"{ArtifactType.CONTACT_SHEET.value}_{ts}.{image.extension}"
        else:
            path = self.output_dir / GRID_OUTPUT_SUBDIR / ts / f"{ArtifactType.CONTACT_SHEET.value}.{image.extension}"
        return self._write(path, image)

    def save_panel(
        self,
        image: ImagePayload,
        cell_index: int,
        resolution: ResolutionTier = ResolutionTier.STANDARD,
        base_dir: Optional[PathLike] = None,
        sheet_dir: Optional[PathLike] = None
    ) -> Path:
        """
        Save a panel expansion.

        Args:
            image: Generated panel image
            cell_index: Grid cell 1..9
            resolution: Tier used in the filename
            base_dir: Project output directory; the panel goes to its IMAGE folder
            sheet_dir: Directory of the originating sheet, used when base_dir is not set
        """
        ts = self.timestamp()
        stem = f"{ArtifactType.PANEL.value}_{cell_index:02d}_{resolution.value}"
        if base_dir:
            path = self._image_dir(base_dir) / f"{stem}_{ts}.{image.extension}"
        elif sheet_dir:
            path = Path(sheet_dir) / f"{stem}.{image.extension}"
        else:
            path = self.output_dir / GRID_OUTPUT_SUBDIR / ts / f"{stem}.{image.extension}"
        return self._write(path, image)

    def save_scene(
        self,
        image: ImagePayload,
        base_dir: Optional[PathLike] = None,
        filename: Optional[str] = None
    ) -> Path:
        ts = self.timestamp()
        if filename and _SAFE_FILENAME.match(filename):
            stem = re.sub(r"\.(png|jpe?g|webp)$", "", filename, flags=re.IGNORECASE)
        else:
            stem = f"{ArtifactType.SCENE.value}_{ts}"
        root = Path(base_dir) if base_dir else self.output_dir / SCENE_OUTPUT_SUBDIR / ts
        return self._write(root / IMAGE_SUBDIR / f"{stem}.{image.extension}", image)

    def save_face_swap(self, image: ImagePayload, base_dir: Optional[PathLike] = None) -> Path:
        ts = self.timestamp()
        root = Path(base_dir) if base_dir else self.output_dir / ArtifactType.FACE_SWAP.value / ts
        return self._write(root / IMAGE_SUBDIR / f"{ArtifactType.FACE_SWAP.value}_{ts}.{image.extension}", image)

    @staticmethod
    def _image_dir(base_dir: PathLike) -> Path:
        return Path(base_dir) / IMAGE_SUBDIR

    @staticmethod
    def _write(path: Path, image: ImagePayload) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(image.data)
        logger.info(f"Saved artifact: {path}")
        return path
