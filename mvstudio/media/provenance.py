"""
Provenance Store

In-memory index of generated artifacts, grouped by the source image they
came from:

    Source -> Sheet (deduplicated by image identity) -> PanelExpansion
    (at most one per cell, latest wins, kept in generation order)

Entries are only ever appended or replaced. Each source group has its own
lock so concurrent recordings against the same group cannot lose updates
or duplicate sheets; a registry lock guards group creation.
"""

import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from mvstudio.core.constants import PANEL_COUNT
from mvstudio.core.exceptions import InvalidCellIndexError
from mvstudio.core.logging_config import get_logger
from mvstudio.media.types import ImagePayload, PanelExpansion, Sheet, Source, SourceGroup

logger = get_logger("media.provenance")


@dataclass
class _SheetRecord:
    sheet_image: ImagePayload
    saved_location: Optional[str]
    panels: List[PanelExpansion] = field(default_factory=list)

    def snapshot(self) -> Sheet:
        return Sheet(
            sheet_image=self.sheet_image,
            saved_location=self.saved_location,
            panels=tuple(self.panels),
        )


@dataclass
class _GroupRecord:
    source: Source
    sheets: List[_SheetRecord] = field(default_factory=list)
    lock: threading.Lock = field(default_factory=threading.Lock)

    def find(self, sheet_image: ImagePayload) -> Optional[_SheetRecord]:
        for record in self.sheets:
            if record.sheet_image.same_image(sheet_image):
                return record
        return None

    def snapshot(self) -> SourceGroup:
        return SourceGroup(
            source=self.source,
            sheets=tuple(record.snapshot() for record in self.sheets),
        )


class ProvenanceStore:
    """
    Ordered, deduplicated record of sources, sheets and panel expansions.

    All read methods return immutable snapshots; mutating them has no
    effect on the store.
    """

    def __init__(self):
        self._groups: Dict[str, _GroupRecord] = {}
        self._registry_lock = threading.Lock()

    # =========================================================================
    # MUTATIONS
    # =========================================================================

    def record_sheet(
        self,
        source_id: str,
        source_label: str,
        source_image: ImagePayload,
        sheet_image: ImagePayload,
        saved_location: Optional[str] = None
    ) -> bool:
        """
        Record a generated contact sheet under its source.

        Creates the source group on first use. A sheet whose image is
        already recorded for the source is ignored.

        Returns:
            True if the sheet was appended, False if it was a duplicate
        """
        group = self._get_or_create(source_id, source_label, source_image)
        with group.lock:
            if group.find(sheet_image) is not None:
                logger.debug(f"Sheet {sheet_image.digest[:12]} already recorded for source '{source_id}'")
                return False
            group.sheets.append(_SheetRecord(sheet_image=sheet_image, saved_location=saved_location))

        logger.info(f"Recorded sheet {sheet_image.digest[:12]} for source '{source_id}'")
        return True

    def record_panel(
        self,
        source_id: str,
        sheet_image: ImagePayload,
        cell_index: int,
        panel_image: ImagePayload
    ) -> bool:
        """
        Record a panel expansion, replacing any earlier one for the same cell.

        The replaced entry is removed and the new one appended, so panels
        stay in generation order.

        Returns:
            True if recorded, False if the source or sheet is unknown

        Raises:
            InvalidCellIndexError: If cell_index is outside 1..9
        """
        if not isinstance(cell_index, int) or not 1 <= cell_index <= PANEL_COUNT:
            raise InvalidCellIndexError(cell_index)

        group = self._groups.get(source_id)
        if group is None:
            logger.warning(f"Ignoring panel {cell_index}: unknown source '{source_id}'")
            return False

        with group.lock:
            record = group.find(sheet_image)
            if record is None:
                logger.warning(
                    f"Ignoring panel {cell_index}: sheet {sheet_image.digest[:12]} "
                    f"not recorded for source '{source_id}'"
                )
                return False
            record.panels = [p for p in record.panels if p.cell_index != cell_index]
            record.panels.append(PanelExpansion(cell_index=cell_index, image=panel_image))

        logger.info(f"Recorded panel {cell_index} for source '{source_id}'")
        return True

    def register_derived_source(self, source_id: str, label: str, image: ImagePayload) -> bool:
        """
        Register a generated artifact as a new source with no sheets.

        Returns:
            True if the group was created, False if the id already existed
        """
        with self._registry_lock:
            if source_id in self._groups:
                return False
            self._groups[source_id] = _GroupRecord(source=Source(source_id, label, image))

        logger.info(f"Registered derived source '{source_id}' ({label})")
        return True

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get_group(self, source_id: str) -> Optional[SourceGroup]:
        group = self._groups.get(source_id)
        if group is None:
            return None
        with group.lock:
            return group.snapshot()

    def groups(self) -> List[SourceGroup]:
        """All groups in creation order."""
        with self._registry_lock:
            records = list(self._groups.values())
        snapshots = []
        for group in records:
            with group.lock:
                snapshots.append(group.snapshot())
        return snapshots

    def find_sheet(self, source_id: str, sheet_image: ImagePayload) -> Optional[Sheet]:
        group = self._groups.get(source_id)
        if group is None:
            return None
        with group.lock:
            record = group.find(sheet_image)
            return record.snapshot() if record else None

    def latest_panel(self, source_id: str, sheet_image: ImagePayload, cell_index: int) -> Optional[PanelExpansion]:
        sheet = self.find_sheet(source_id, sheet_image)
        return sheet.panel(cell_index) if sheet else None

    def __len__(self) -> int:
        return len(self._groups)

    def __contains__(self, source_id: str) -> bool:
        return source_id in self._groups

    # =========================================================================
    # INTERNAL
    # =========================================================================

    def _get_or_create(self, source_id: str, label: str, image: ImagePayload) -> _GroupRecord:
        with self._registry_lock:
            group = self._groups.get(source_id)
            if group is None:
                group = _GroupRecord(source=Source(source_id, label, image))
                self._groups[source_id] = group
                logger.debug(f"Created provenance group '{source_id}'")
            return group
