"""Scenes router: scene images and face swaps."""

from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from mvstudio.api.dependencies import get_studio, limiter
from mvstudio.api.routers.grid import failure_response
from mvstudio.media.studio import MediaStudio

router = APIRouter()


class SceneImageRequest(BaseModel):
    prompt: str = Field(min_length=1)
    reference_image: str
    character_description: Optional[str] = None
    base_dir: Optional[str] = None
    filename: Optional[str] = None


class FaceSwapRequest(BaseModel):
    source_image: str
    reference_image: str
    character_description: Optional[str] = None
    base_dir: Optional[str] = None


@router.post("/image")
@limiter.limit("10/minute")
async def generate_scene_image(
    request: Request,
    scene_request: SceneImageRequest,
    studio: MediaStudio = Depends(get_studio)
):
    """Generate a 16:9 scene image from a prompt and a reference image."""
    result = await studio.generate_scene_image(
        scene_request.prompt,
        scene_request.reference_image,
        scene_request.character_description,
        base_dir=scene_request.base_dir,
        filename=scene_request.filename,
    )
    if not result.success:
        return failure_response(result)
    return {"image_url": result.image_url, "saved_path": result.saved_path}


@router.post("/face-swap")
@limiter.limit("10/minute")
async def swap_face(
    request: Request,
    swap_request: FaceSwapRequest,
    studio: MediaStudio = Depends(get_studio)
):
    """Replace face and hair in a scene image with those of a reference."""
    result = await studio.swap_face(
        swap_request.source_image,
        swap_request.reference_image,
        swap_request.character_description,
        base_dir=swap_request.base_dir,
    )
    if not result.success:
        return failure_response(result)
    return {"image_url": result.image_url, "saved_path": result.saved_path}
