"""
Media Studio

Caller-facing facade over the generation pipeline. Builds instructions,
runs them through the retry orchestrator, persists successful artifacts and
records them in the provenance store.

Terminal generation failures are returned in a StudioResult rather than
raised; invalid input (undecodable images, bad cell indices) raises.
"""

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from mvstudio.core.config import StudioConfig
from mvstudio.core.constants import CONTACT_SHEET_IMAGE_SIZE, PANEL_COUNT, ResolutionTier
from mvstudio.core.exceptions import ImageDataError, InvalidCellIndexError
from mvstudio.core.logging_config import get_logger
from mvstudio.core.prompts_config import PromptsConfig, load_prompts_config
from mvstudio.core.retry import SleepFunc
from mvstudio.media.artifacts import ArtifactWriter
from mvstudio.media.error_classifier import ErrorCategory
from mvstudio.media.generation_client import MediaGenerationClient
from mvstudio.media.image_preprocessor import ImageInput, compress_image, is_plausible_image, to_payload
from mvstudio.media.orchestrator import (
    CellExpansion,
    GenerationBackend,
    GenerationPlan,
    OrchestrationResult,
    RequestShape,
    RetryOrchestrator,
)
from mvstudio.media.prompt_builder import PromptBuilder, PromptConstraints, PromptMode
from mvstudio.media.provenance import ProvenanceStore
from mvstudio.media.types import GenerationOptions, ImagePayload

logger = get_logger("media.studio")

SCENE_IMAGE_SIZE = ResolutionTier.STANDARD.value


@dataclass
class StudioResult:
    """Outcome of one studio operation."""
    success: bool
    image: Optional[ImagePayload] = None
    message: str = ""
    saved_path: Optional[str] = None
    category: Optional[ErrorCategory] = None
    orchestration: Optional[OrchestrationResult] = None

    @property
    def image_url(self) -> Optional[str]:
        return self.image.to_data_url() if self.image else None

    @classmethod
    def from_orchestration(cls, result: OrchestrationResult, saved_path: Optional[Path] = None) -> "StudioResult":
        return cls(
            success=result.success,
            image=result.image,
            message=result.message,
            saved_path=str(saved_path) if saved_path else None,
            category=result.category,
            orchestration=result,
        )


class MediaStudio:
    """
    Facade for contact sheets, cell expansions, scene images and face swaps.

    Usage:
        studio = MediaStudio.from_config(get_config())
        sheet = await studio.generate_contact_sheet(image, source_id="scene-1", source_label="Scene 1")
        panel = await studio.expand_cell(sheet.image, 5, source_id="scene-1")
    """

    def __init__(
        self,
        client: GenerationBackend,
        config: Optional[StudioConfig] = None,
        prompts: Optional[PromptsConfig] = None,
        provenance: Optional[ProvenanceStore] = None,
        writer: Optional[ArtifactWriter] = None,
        sleep: SleepFunc = asyncio.sleep
    ):
        self.config = config or StudioConfig()
        self.client = client
        self.provenance = provenance if provenance is not None else ProvenanceStore()
        self.writer = writer or ArtifactWriter(self.config.paths.output_dir)
        self.prompt_builder = PromptBuilder(prompts)

        self.orchestrator = RetryOrchestrator(
            client, self.config.generation.models, self.config.retry, sleep=sleep
        )
        self.face_swap_orchestrator = RetryOrchestrator(
            client, self.config.generation.face_swap_models, self.config.retry, sleep=sleep
        )

    @classmethod
    def from_config(cls, config: StudioConfig, transport=None) -> "MediaStudio":
        """
        Build a studio with a live Gemini client.

        Raises:
            MissingConfigError: If no API key can be resolved
        """
        client = MediaGenerationClient(
            api_key=config.resolve_api_key(),
            base_url=config.generation.base_url,
            timeout=config.generation.timeout,
            transport=transport,
        )
        return cls(client, config=config, prompts=load_prompts_config(config.prompts_path))

    @property
    def prompts(self) -> PromptsConfig:
        return self.prompt_builder.prompts

    @prompts.setter
    def prompts(self, value: PromptsConfig) -> None:
        self.prompt_builder = PromptBuilder(value)

    # =========================================================================
    # CONTACT SHEETS
    # =========================================================================

    async def generate_contact_sheet(
        self,
        source_image: ImageInput,
        overrides: Optional[str] = None,
        options: Optional[GenerationOptions] = None,
        *,
        source_id: str,
        source_label: str,
        closeup: bool = False,
        base_dir: Optional[str] = None
    ) -> StudioResult:
        """
        Generate a 3x3 contact sheet from a source image.

        Large or non-JPEG sources are downscaled before the request; provenance
        keeps the original image.

        Args:
            source_image: Source image (data URL, base64, bytes or payload)
            overrides: Replacement intro text for the sheet instruction
            options: Reference image, style hint and other constraints
            source_id: Provenance group for the sheet
            source_label: Human label of the source
            closeup: Use the close-up sheet prompt
            base_dir: Project output directory for the saved sheet

        Returns:
            StudioResult with the sheet image, or the failure reason
        """
        options = options or GenerationOptions()
        source = to_payload(source_image)
        request_source = compress_image(source)
        constraints = self._constraints(options)

        shape = RequestShape(
            instruction=self.prompt_builder.build(
                PromptMode.COMPOSITE, template=overrides, constraints=constraints, closeup=closeup
            ),
            images=(request_source,),
            reference=options.reference_image,
            instruction_without_reference=self.prompt_builder.build(
                PromptMode.COMPOSITE, template=overrides, constraints=constraints.without_reference(),
                closeup=closeup,
            ),
        )
        plan = GenerationPlan(
            shape=shape,
            aspect_ratio=self.config.generation.aspect_ratio,
            image_size=CONTACT_SHEET_IMAGE_SIZE,
            label=f"contact sheet [{source_id}]",
        )

        result = await self.orchestrator.run(plan)
        if not result.success:
            return StudioResult.from_orchestration(result)

        saved = self._save(lambda: self.writer.save_contact_sheet(result.image, base_dir))
        self.provenance.record_sheet(
            source_id,
            source_label,
            source,
            result.image,
            str(saved.parent) if saved else None,
        )
        return StudioResult.from_orchestration(result, saved)

    async def expand_cell(
        self,
        sheet_image: ImageInput,
        cell_index: int,
        options: Optional[GenerationOptions] = None,
        *,
        source_id: Optional[str] = None,
        base_dir: Optional[str] = None
    ) -> StudioResult:
        """
        Expand one cell of a contact sheet into a high resolution image.

        If the provider filters the full sheet, the cell is cropped out and
        sent on its own.

        Raises:
            InvalidCellIndexError: If cell_index is outside 1..9
            ImageDataError: If the sheet cannot be decoded
        """
        if not isinstance(cell_index, int) or not 1 <= cell_index <= PANEL_COUNT:
            raise InvalidCellIndexError(cell_index)

        options = options or GenerationOptions()
        sheet = to_payload(sheet_image)
        constraints = self._constraints(options)
        resolution = options.resolution

        def build(mode: PromptMode, prompt_constraints: PromptConstraints) -> str:
            return self.prompt_builder.build(
                mode, cell_index=cell_index, resolution=resolution, constraints=prompt_constraints
            )

        plan = GenerationPlan(
            shape=RequestShape(
                instruction=build(PromptMode.CELL, constraints),
                images=(sheet,),
                reference=options.reference_image,
                instruction_without_reference=build(PromptMode.CELL, constraints.without_reference()),
            ),
            aspect_ratio=self.config.generation.aspect_ratio,
            image_size=resolution.value,
            expansion=CellExpansion(
                cell_index=cell_index,
                cropped_instruction=build(PromptMode.CROPPED_CELL, constraints),
                cropped_instruction_without_reference=build(
                    PromptMode.CROPPED_CELL, constraints.without_reference()
                ),
            ),
            label=f"cell {cell_index} [{source_id or 'unsourced'}]",
        )

        result = await self.orchestrator.run(plan)
        if not result.success:
            return StudioResult.from_orchestration(result)

        sheet_dir = None
        if source_id:
            recorded = self.provenance.find_sheet(source_id, sheet)
            sheet_dir = recorded.saved_location if recorded else None

        saved = self._save(
            lambda: self.writer.save_panel(result.image, cell_index, resolution, base_dir, sheet_dir)
        )
        if source_id:
            self.provenance.record_panel(source_id, sheet, cell_index, result.image)
        return StudioResult.from_orchestration(result, saved)

    # =========================================================================
    # SCENES & FACE SWAP
    # =========================================================================

    async def generate_scene_image(
        self,
        prompt: str,
        reference_image: ImageInput,
        character_description: Optional[str] = None,
        *,
        base_dir: Optional[str] = None,
        filename: Optional[str] = None
    ) -> StudioResult:
        """Generate a 16:9 scene image that keeps the reference's look."""
        if not prompt or not prompt.strip():
            raise ValueError("Scene prompt must not be empty")

        reference = to_payload(reference_image)
        constraints = PromptConstraints(character_description=character_description, reference_attached=True)
        plan = GenerationPlan(
            shape=RequestShape(
                instruction=self.prompt_builder.build(
                    PromptMode.STYLE, scene_prompt=prompt, constraints=constraints
                ),
                images=(reference,),
            ),
            aspect_ratio=self.config.generation.aspect_ratio,
            image_size=SCENE_IMAGE_SIZE,
            label="scene image",
        )

        result = await self.orchestrator.run(plan)
        if not result.success:
            return StudioResult.from_orchestration(result)

        saved = self._save(lambda: self.writer.save_scene(result.image, base_dir, filename))
        return StudioResult.from_orchestration(result, saved)

    async def swap_face(
        self,
        source_image: ImageInput,
        reference_image: ImageInput,
        character_description: Optional[str] = None,
        *,
        base_dir: Optional[str] = None
    ) -> StudioResult:
        """
        Replace face and hair in the source image with those of the reference.

        Both images are validated and compressed before any provider call.

        Raises:
            ImageDataError: If either image is not plausible image data
        """
        images = self._prepare_face_swap_images([source_image, reference_image])
        constraints = PromptConstraints(character_description=character_description)
        plan = GenerationPlan(
            shape=RequestShape(
                instruction=self.prompt_builder.build(PromptMode.FACE_SWAP, constraints=constraints),
                images=tuple(images),
            ),
            aspect_ratio=self.config.generation.aspect_ratio,
            label="face swap",
        )

        result = await self.face_swap_orchestrator.run(plan)
        if not result.success:
            return StudioResult.from_orchestration(result)

        saved = self._save(lambda: self.writer.save_face_swap(result.image, base_dir))
        return StudioResult.from_orchestration(result, saved)

    # =========================================================================
    # PROVENANCE
    # =========================================================================

    def register_derived_source(self, source_id: str, label: str, image: ImageInput) -> bool:
        """Register a generated artifact as a new provenance source."""
        return self.provenance.register_derived_source(source_id, label, to_payload(image))

    # =========================================================================
    # HELPERS
    # =========================================================================

    @staticmethod
    def _constraints(options: GenerationOptions) -> PromptConstraints:
        return PromptConstraints(
            style_hint=options.style_hint,
            character_description=options.character_description,
            auxiliary_instruction=options.auxiliary_instruction,
            reference_attached=options.reference_image is not None,
        )

    @staticmethod
    def _prepare_face_swap_images(inputs: Sequence[ImageInput]) -> list:
        prepared = []
        for value in inputs:
            payload = to_payload(value)
            if not is_plausible_image(payload):
                raise ImageDataError("Image data is not valid", {"size": payload.size})
            prepared.append(compress_image(payload))
        return prepared

    def _save(self, save) -> Optional[Path]:
        if not self.config.save_artifacts:
            return None
        try:
            return save()
        except OSError as e:
            logger.error(f"Failed to save artifact: {e}")
            return None
