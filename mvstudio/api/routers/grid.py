"""Grid router: contact sheets and single-cell expansions."""

from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from mvstudio.api.dependencies import get_studio, limiter
from mvstudio.core.constants import ResolutionTier
from mvstudio.core.logging_config import get_logger
from mvstudio.media.image_preprocessor import to_payload
from mvstudio.media.studio import MediaStudio, StudioResult
from mvstudio.media.types import GenerationOptions

logger = get_logger("api.grid")

router = APIRouter()


class ContactSheetRequest(BaseModel):
    image: str
    source_id: Optional[str] = None
    source_label: Optional[str] = None
    prompt_override: Optional[str] = None
    closeup: bool = False
    reference_image: Optional[str] = None
    style_hint: Optional[str] = None
    character_description: Optional[str] = None
    base_dir: Optional[str] = None


class CellRequest(BaseModel):
    image: str
    cell: int
    source_id: Optional[str] = None
    reference_image: Optional[str] = None
    use_reference: bool = True
    style_hint: Optional[str] = None
    resolution: str = ResolutionTier.STANDARD.value
    auxiliary_prompt: Optional[str] = None
    character_description: Optional[str] = None
    base_dir: Optional[str] = None


def failure_response(result: StudioResult) -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={
            "error": result.message,
            "category": result.category.value if result.category else None,
        },
    )


@router.post("/contact-sheet")
@limiter.limit("10/minute")
async def generate_contact_sheet(
    request: Request,
    sheet_request: ContactSheetRequest,
    studio: MediaStudio = Depends(get_studio)
):
    """Generate a 3x3 contact sheet from a source image."""
    source = to_payload(sheet_request.image)
    source_id = sheet_request.source_id or source.digest[:16]
    options = GenerationOptions(
        reference_image=to_payload(sheet_request.reference_image) if sheet_request.reference_image else None,
        style_hint=sheet_request.style_hint,
        character_description=sheet_request.character_description,
    )

    result = await studio.generate_contact_sheet(
        source,
        sheet_request.prompt_override,
        options,
        source_id=source_id,
        source_label=sheet_request.source_label or source_id,
        closeup=sheet_request.closeup,
        base_dir=sheet_request.base_dir,
    )
    if not result.success:
        return failure_response(result)

    sheet = studio.provenance.find_sheet(source_id, result.image)
    return {
        "image_url": result.image_url,
        "source_id": source_id,
        "saved_path": result.saved_path,
        "save_dir": sheet.saved_location if sheet else None,
        "reference_dropped": result.orchestration.reference_dropped,
    }


@router.post("/cell")
@limiter.limit("20/minute")
async def expand_cell(
    request: Request,
    cell_request: CellRequest,
    studio: MediaStudio = Depends(get_studio)
):
    """Expand one contact sheet cell to a 2K or 4K image."""
    reference = None
    if cell_request.use_reference and cell_request.reference_image:
        reference = to_payload(cell_request.reference_image)

    resolution = ResolutionTier.parse(cell_request.resolution)
    options = GenerationOptions(
        reference_image=reference,
        style_hint=cell_request.style_hint,
        resolution=resolution,
        auxiliary_instruction=cell_request.auxiliary_prompt,
        character_description=cell_request.character_description,
    )

    result = await studio.expand_cell(
        cell_request.image,
        cell_request.cell,
        options,
        source_id=cell_request.source_id,
        base_dir=cell_request.base_dir,
    )
    if not result.success:
        return failure_response(result)

    return {
        "image_url": result.image_url,
        "cell_index": cell_request.cell,
        "resolution": resolution.value,
        "saved_path": result.saved_path,
        "cropped": result.orchestration.cropped,
        "reference_dropped": result.orchestration.reference_dropped,
    }
