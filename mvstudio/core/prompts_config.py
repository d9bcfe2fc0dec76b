"""
Prompt Configuration

Editable prompt templates for contact sheet generation, stored as JSON in
config/prompts.json. Missing or partial files fall back to the defaults below.
"""

import json
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import List

from .constants import PANEL_COUNT
from .exceptions import InvalidConfigError
from .logging_config import get_logger

logger = get_logger("core.prompts_config")


DEFAULT_CONTACT_SHEET_PROMPT = (
    "You are a portrait photographer. Using the attached reference image, generate ONE "
    "cinematic contact sheet image.\n\n"
    "Requirements: the image must be a single complete 3x3 grid with 9 panels, numbered "
    "1-9 left to right, top to bottom.\n"
    "Each panel uses the shot type below; the same person, wardrobe and lighting stay "
    "consistent across all panels:\n"
)

DEFAULT_PANEL_DESCRIPTIONS = [
    "Extreme long shot (ELS): the subject appears small in a vast environment",
    "Long shot (LS): the whole subject visible head to toe",
    "Medium long shot (MLS): from the knees up or a 3/4 view",
    "Medium shot (MS): from the waist up",
    "Medium close-up (MCU): from the chest up, intimate framing",
    "Close-up (CU): the face or a tight frontal framing",
    "Extreme close-up (ECU): macro detail such as eyes or hands",
    "Low angle (worm's eye): looking up from the ground",
    "High angle (bird's eye): looking down from above",
]

DEFAULT_CLOSEUP_PROMPT = (
    "You are a photographer with a quiet, intimate eye for light, still life and detail.\n\n"
    "Analyse the overall composition of the input image and identify its main subject.\n\n"
    "Generate one coherent 16:9 3x3 grid \"cinematic contact sheet\" with these 9 distinct "
    "shots, each showing a still-life object, atmospheric light, or a detail from the "
    "reference image. Separate the shots with thin black lines.\n\n"
    "Row 1 (establishing): 1. the empty environment; 2. a close-up of the most beautiful "
    "object in the scene; 3. the light and shadow of the scene, subject out of focus.\n"
    "Row 2 (core coverage): 4. dust, shadow, water or wind in the air; 5. an extreme "
    "close-up detail of the subject; 6. a close-up of the subject's shoulders.\n"
    "Row 3 (details and angles): 7. an ECU of the subject's eyes from an observer's view; "
    "8. a low angle detail shot; 9. the subject's hand resting on an object in the scene.\n\n"
    "Keep strict consistency: the same person or object, wardrobe and lighting in every "
    "frame, with realistic texture and a consistent cinematic color grade."
)


@dataclass
class PromptsConfig:
    """Prompt templates for the contact sheet workflow."""
    grid_contact_sheet_prompt: str = DEFAULT_CONTACT_SHEET_PROMPT
    grid_panel_descriptions: List[str] = field(default_factory=lambda: list(DEFAULT_PANEL_DESCRIPTIONS))
    grid_closeup_prompt: str = DEFAULT_CLOSEUP_PROMPT

    @classmethod
    def from_dict(cls, data: dict) -> "PromptsConfig":
        """Merge a (possibly partial) dict over the defaults.

        Accepts both snake_case keys and the camelCase keys written by the UI.
        A panel list shorter than nine entries is ignored.
        """
        defaults = cls()

        def pick(snake: str, camel: str, fallback):
            if snake in data:
                return data[snake]
            return data.get(camel, fallback)

        intro = pick("grid_contact_sheet_prompt", "gridContactSheetPrompt", defaults.grid_contact_sheet_prompt)
        panels = pick("grid_panel_descriptions", "gridPanelDescriptions", None)
        closeup = pick("grid_closeup_prompt", "gridCloseupPrompt", defaults.grid_closeup_prompt)

        if isinstance(panels, list) and len(panels) >= PANEL_COUNT:
            panels = [str(p) for p in panels[:PANEL_COUNT]]
        else:
            panels = list(defaults.grid_panel_descriptions)

        return cls(
            grid_contact_sheet_prompt=str(intro),
            grid_panel_descriptions=panels,
            grid_closeup_prompt=str(closeup),
        )

    def to_dict(self) -> dict:
        return asdict(self)


def load_prompts_config(path: Path) -> PromptsConfig:
    """Load prompt templates, falling back to defaults on a missing or broken file."""
    path = Path(path)
    if not path.exists():
        return PromptsConfig()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        logger.warning(f"Ignoring unreadable prompts config {path}: {e}")
        return PromptsConfig()
    if not isinstance(data, dict):
        logger.warning(f"Ignoring prompts config {path}: expected an object")
        return PromptsConfig()
    return PromptsConfig.from_dict(data)


def save_prompts_config(config: PromptsConfig, path: Path) -> None:
    """Write prompt templates as JSON."""
    if len(config.grid_panel_descriptions) < PANEL_COUNT:
        raise InvalidConfigError(
            f"grid_panel_descriptions needs {PANEL_COUNT} entries",
            {"count": len(config.grid_panel_descriptions)},
        )
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(config.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
