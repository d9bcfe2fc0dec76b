"""
Tests for Prompt Builder

Tests for mvstudio/media/prompt_builder.py
"""

import pytest

from mvstudio.core.constants import ResolutionTier
from mvstudio.core.prompts_config import DEFAULT_PANEL_DESCRIPTIONS, PromptsConfig
from mvstudio.media.prompt_builder import PromptBuilder, PromptConstraints, PromptMode


@pytest.fixture
def builder():
    return PromptBuilder()


class TestCompositeMode:
    """Tests for contact sheet instructions."""

    def test_lists_all_panels(self, builder):
        """Test every shot description is numbered in order."""
        prompt = builder.build(PromptMode.COMPOSITE)

        for index, description in enumerate(DEFAULT_PANEL_DESCRIPTIONS, start=1):
            assert f"{index}. {description}" in prompt

    def test_template_override(self, builder):
        """Test a custom intro replaces the configured one."""
        prompt = builder.build(PromptMode.COMPOSITE, template="Shoot a noir sheet.")

        assert prompt.startswith("Shoot a noir sheet.")
        assert DEFAULT_PANEL_DESCRIPTIONS[0] in prompt

    def test_closeup_replaces_intro_and_panels(self):
        """Test the close-up prompt replaces intro and panel lines."""
        builder = PromptBuilder(PromptsConfig(grid_closeup_prompt="CLOSEUP SHEET"))

        prompt = builder.build(PromptMode.COMPOSITE, closeup=True)

        assert prompt.startswith("CLOSEUP SHEET")
        assert DEFAULT_PANEL_DESCRIPTIONS[0] not in prompt


class TestCellModes:
    """Tests for cell expansion instructions."""

    def test_cell_instruction(self, builder):
        """Test the cell instruction names the cell, shot and tier."""
        prompt = builder.build(PromptMode.CELL, cell_index=5, resolution=ResolutionTier.HIGH)

        assert "3x3" in prompt
        assert "panel 5" in prompt
        assert DEFAULT_PANEL_DESCRIPTIONS[4] in prompt
        assert "4K" in prompt
        assert "Composition, pose and lighting must match panel 5 exactly" in prompt
        assert "do not invent one" in prompt

    def test_cell_invalid_index(self, builder):
        with pytest.raises(ValueError):
            builder.build(PromptMode.CELL, cell_index=10)

    def test_cropped_cell_references_only_the_frame(self, builder):
        """Test the cropped instruction does not mention the grid."""
        prompt = builder.build(PromptMode.CROPPED_CELL, resolution=ResolutionTier.STANDARD)

        assert "3x3" not in prompt
        assert "2K" in prompt
        assert "do not invent one" in prompt

    def test_custom_panel_descriptions(self):
        """Test configured shot descriptions flow into cell prompts."""
        panels = [f"custom shot {i}" for i in range(1, 10)]
        builder = PromptBuilder(PromptsConfig(grid_panel_descriptions=panels))

        assert "custom shot 7" in builder.build(PromptMode.CELL, cell_index=7)


class TestConstraints:
    """Tests for identity and auxiliary constraints."""

    def test_style_hint_embedded_verbatim(self, builder):
        """Test the hint appears verbatim and marked must-match."""
        constraints = PromptConstraints(style_hint="East Asian woman", reference_attached=True)

        prompt = builder.build(PromptMode.COMPOSITE, constraints=constraints)

        assert "East Asian woman" in prompt
        assert "must match exactly" in prompt
        assert "reference image" in prompt

    def test_character_description_embedded(self, builder):
        constraints = PromptConstraints(character_description="short silver hair, green eyes")

        prompt = builder.build(PromptMode.CELL, cell_index=1, constraints=constraints)

        assert "short silver hair, green eyes" in prompt
        assert "must match exactly" in prompt

    def test_auxiliary_instruction_trimmed_and_appended(self, builder):
        constraints = PromptConstraints(auxiliary_instruction="  rain on the window  ")

        prompt = builder.build(PromptMode.CELL, cell_index=2, constraints=constraints)

        assert prompt.endswith("rain on the window")

    def test_without_reference_wording(self, builder):
        """Test the no-reference variant keeps the hint but drops the reference."""
        constraints = PromptConstraints(style_hint="Western man", reference_attached=True)

        prompt = builder.build(PromptMode.CROPPED_CELL, constraints=constraints.without_reference())

        assert "Western man" in prompt
        assert "reference image" not in prompt

    def test_build_is_deterministic(self, builder):
        constraints = PromptConstraints(style_hint="hint", auxiliary_instruction="extra")

        first = builder.build(PromptMode.CELL, cell_index=3, constraints=constraints)
        second = builder.build(PromptMode.CELL, cell_index=3, constraints=constraints)

        assert first == second


class TestSceneModes:
    """Tests for style and face swap instructions."""

    def test_style_includes_scene_prompt(self, builder):
        prompt = builder.build(PromptMode.STYLE, scene_prompt="  neon alley at night ")

        assert "neon alley at night" in prompt
        assert "16:9" in prompt

    def test_face_swap_mentions_both_images(self, builder):
        prompt = builder.build(PromptMode.FACE_SWAP)

        assert "first image" in prompt
        assert "second image" in prompt
