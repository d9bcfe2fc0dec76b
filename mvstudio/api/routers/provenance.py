"""Provenance router: read the source/sheet/panel index, register derived sources."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from mvstudio.api.dependencies import get_studio
from mvstudio.media.studio import MediaStudio
from mvstudio.media.types import SourceGroup

router = APIRouter()


class DerivedSourceRequest(BaseModel):
    source_id: str
    label: str
    image: str


def _group_to_dict(group: SourceGroup, include_images: bool) -> dict:
    def image_fields(payload) -> dict:
        fields = {"digest": payload.digest, "mime_type": payload.mime_type}
        if include_images:
            fields["image_url"] = payload.to_data_url()
        return fields

    return {
        "source_id": group.source_id,
        "label": group.source.label,
        "source_image": image_fields(group.source.image),
        "sheets": [
            {
                "sheet_image": image_fields(sheet.sheet_image),
                "saved_location": sheet.saved_location,
                "panels": [
                    {"cell_index": panel.cell_index, **image_fields(panel.image)}
                    for panel in sheet.panels
                ],
            }
            for sheet in group.sheets
        ],
    }


@router.get("")
async def list_groups(include_images: bool = False, studio: MediaStudio = Depends(get_studio)):
    """List provenance groups in creation order."""
    return {"groups": [_group_to_dict(g, include_images) for g in studio.provenance.groups()]}


@router.post("/sources")
async def register_source(source_request: DerivedSourceRequest, studio: MediaStudio = Depends(get_studio)):
    """Register a generated image as a new source."""
    created = studio.register_derived_source(source_request.source_id, source_request.label, source_request.image)
    return {"success": True, "created": created, "source_id": source_request.source_id}
