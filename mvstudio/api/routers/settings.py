"""Settings router: editable prompt templates."""

from typing import List

from fastapi import APIRouter
from pydantic import BaseModel, Field

from mvstudio.api.dependencies import peek_studio
from mvstudio.core.config import get_config
from mvstudio.core.constants import PANEL_COUNT
from mvstudio.core.prompts_config import PromptsConfig, load_prompts_config, save_prompts_config

router = APIRouter()


class PromptSettings(BaseModel):
    grid_contact_sheet_prompt: str
    grid_panel_descriptions: List[str] = Field(min_length=PANEL_COUNT)
    grid_closeup_prompt: str


@router.get("/prompts")
async def get_prompts():
    """Get the prompt templates, defaults filled in."""
    return load_prompts_config(get_config().prompts_path).to_dict()


@router.post("/prompts")
async def save_prompts(settings: PromptSettings):
    """Save the prompt templates and apply them to the running studio."""
    prompts = PromptsConfig.from_dict(settings.model_dump())
    save_prompts_config(prompts, get_config().prompts_path)

    studio = peek_studio()
    if studio is not None:
        studio.prompts = prompts
    return {"success": True, "message": "Prompts saved"}
