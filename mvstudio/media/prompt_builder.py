"""
Prompt Builder

Template-based instruction text for every generation mode. No I/O and no
provider calls: the same inputs always produce the same instruction.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from mvstudio.core.constants import PANEL_COUNT, ResolutionTier
from mvstudio.core.exceptions import InvalidCellIndexError
from mvstudio.core.logging_config import get_logger
from mvstudio.core.prompts_config import PromptsConfig

logger = get_logger("media.prompt_builder")


class PromptMode(Enum):
    """Instruction shapes understood by the builder."""
    COMPOSITE = "composite"         # Full 3x3 contact sheet
    CELL = "cell"                   # One cell, sheet attached
    CROPPED_CELL = "cropped_cell"   # One cell, only the cropped region attached
    STYLE = "style"                 # Scene image keeping the reference's look
    FACE_SWAP = "face_swap"


@dataclass(frozen=True)
class PromptConstraints:
    """Optional identity and wording constraints appended to an instruction."""
    style_hint: Optional[str] = None
    character_description: Optional[str] = None
    auxiliary_instruction: Optional[str] = None
    reference_attached: bool = False

    def without_reference(self) -> "PromptConstraints":
        return PromptConstraints(
            style_hint=self.style_hint,
            character_description=self.character_description,
            auxiliary_instruction=self.auxiliary_instruction,
            reference_attached=False,
        )


COMPOSITE_CLOSING = (
    "\nOutput this single 16:9 contact sheet with 9 panels separated by thin black lines, "
    "keeping tone and style consistent across all panels."
)

CROPPED_CELL_TEMPLATE = (
    "The attached image is a single frame cut from a contact sheet.\n\n"
    "Recreate this frame as one standalone, complete {tier} image.\n"
    "Composition, pose and lighting must match the attached frame exactly.\n"
    "If the frame shows no person or subject, do not invent one.\n"
    "Output one complete image at {tier} resolution."
)

STYLE_TEMPLATE = (
    "You are a portrait and scene photographer. Using the scene prompt and the attached "
    "reference image, generate one cinematic 16:9 scene image.\n\n"
    "Requirements:\n"
    "- The person's facial and body features must match the reference image exactly.\n"
    "- Keep the lighting, color tone and photographic style of the reference image.\n"
    "- Composition: medium shot or close-up with natural framing; the subject need not "
    "be centered.\n\n"
    "Scene prompt:\n{scene_prompt}\n\n"
    "Output one 16:9 landscape image with a consistent cinematic look."
)

FACE_SWAP_TEMPLATE = (
    "Keep everything in the first image exactly as it is: composition, pose, body, "
    "clothing, background and lighting.\n"
    "Replace only the face and hair with the face and hair of the person in the second "
    "image.\n"
    "The new face must blend naturally with the lighting and skin tone of the first image.\n"
    "Output one image with the same framing as the first image."
)


class PromptBuilder:
    """
    Builds generation instructions from the configured templates.

    Panel shot-type descriptions and the contact sheet intro come from
    PromptsConfig, so edits to config/prompts.json flow into every mode.
    """

    def __init__(self, prompts: Optional[PromptsConfig] = None):
        self.prompts = prompts or PromptsConfig()

    def build(
        self,
        mode: PromptMode,
        *,
        template: Optional[str] = None,
        cell_index: Optional[int] = None,
        resolution: ResolutionTier = ResolutionTier.STANDARD,
        scene_prompt: str = "",
        constraints: Optional[PromptConstraints] = None,
        closeup: bool = False
    ) -> str:
        """
        Build one instruction string.

        Args:
            mode: Instruction shape
            template: Overrides the configured intro text (COMPOSITE only)
            cell_index: Grid cell 1..9 (CELL only)
            resolution: Output resolution tier for cell modes
            scene_prompt: User prompt (STYLE only)
            constraints: Identity hint, character features, auxiliary text
            closeup: Use the close-up sheet prompt in COMPOSITE mode

        Returns:
            The instruction text
        """
        if mode == PromptMode.COMPOSITE:
            body = self._composite(template, closeup)
        elif mode == PromptMode.CELL:
            body = self._cell(cell_index, resolution)
        elif mode == PromptMode.CROPPED_CELL:
            body = CROPPED_CELL_TEMPLATE.format(tier=resolution.value)
        elif mode == PromptMode.STYLE:
            body = STYLE_TEMPLATE.format(scene_prompt=scene_prompt.strip())
        elif mode == PromptMode.FACE_SWAP:
            body = FACE_SWAP_TEMPLATE
        else:
            raise ValueError(f"Unknown prompt mode: {mode}")

        return body + self._constraint_block(constraints)

    # =========================================================================
    # MODES
    # =========================================================================

    def _composite(self, template: Optional[str], closeup: bool) -> str:
        if closeup and self.prompts.grid_closeup_prompt.strip():
            return self.prompts.grid_closeup_prompt.strip() + "\n" + COMPOSITE_CLOSING

        intro = template if template is not None else self.prompts.grid_contact_sheet_prompt
        lines = [intro.rstrip(), ""]
        for index, description in enumerate(self.panel_descriptions(), start=1):
            lines.append(f"{index}. {description}")
        lines.append(COMPOSITE_CLOSING)
        return "\n".join(lines)

    def _cell(self, cell_index: Optional[int], resolution: ResolutionTier) -> str:
        if not isinstance(cell_index, int) or not 1 <= cell_index <= PANEL_COUNT:
            raise InvalidCellIndexError(cell_index)

        description = self.panel_descriptions()[cell_index - 1]
        tier = resolution.value
        return (
            f"The attached image is a 3x3 contact sheet with 9 panels, numbered 1-9 left to "
            f"right, top to bottom.\n\n"
            f"Using ONLY the content of panel {cell_index}, generate one standalone, complete "
            f"{tier} image.\n"
            f"Panel {cell_index} shot type: {description}.\n"
            f"Composition, pose and lighting must match panel {cell_index} exactly; keep the "
            f"same person, wardrobe and lighting as in that panel.\n"
            f"If panel {cell_index} shows no person or subject, do not invent one.\n"
            f"Output one complete image at {tier} resolution, not a grid."
        )

    def panel_descriptions(self) -> List[str]:
        return list(self.prompts.grid_panel_descriptions[:PANEL_COUNT])

    # =========================================================================
    # CONSTRAINTS
    # =========================================================================

    @staticmethod
    def _constraint_block(constraints: Optional[PromptConstraints]) -> str:
        if constraints is None:
            return ""

        lines = []
        if constraints.style_hint and constraints.style_hint.strip():
            hint = constraints.style_hint.strip()
            if constraints.reference_attached:
                lines.append(
                    f"- The subject is {hint}, as in the attached reference image. "
                    f"This must match exactly."
                )
            else:
                lines.append(f"- The subject is {hint}. This must match exactly.")
        if constraints.character_description and constraints.character_description.strip():
            lines.append(
                f"- Character features (must match exactly): "
                f"{constraints.character_description.strip()}"
            )

        block = ""
        if lines:
            block = "\n\nHARD CONSTRAINTS:\n" + "\n".join(lines)
        if constraints.auxiliary_instruction and constraints.auxiliary_instruction.strip():
            block += "\n\n" + constraints.auxiliary_instruction.strip()
        return block
