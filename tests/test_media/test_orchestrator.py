"""
Tests for Retry Orchestrator

Tests for mvstudio/media/orchestrator.py
"""

import io
import random

import httpx
import pytest
from PIL import Image

from mvstudio.core.retry import NO_WAIT_RETRY_CONFIG, RetryConfig
from mvstudio.media.error_classifier import ErrorCategory
from mvstudio.media.generation_client import MediaGenerationClient
from mvstudio.media.orchestrator import (
    CellExpansion,
    GenerationPlan,
    OrchestratorState,
    RequestShape,
    RetryOrchestrator,
)

MODELS = ["model-a", "model-b"]

MALFORMED = ErrorCategory.MALFORMED_REQUEST
FILTERED = ErrorCategory.CONTENT_FILTERED
TRANSIENT = ErrorCategory.TRANSIENT
NO_OUTPUT = ErrorCategory.NO_OUTPUT


def composite_plan(source, reference=None):
    return GenerationPlan(
        shape=RequestShape(
            instruction="sheet with reference",
            images=(source,),
            reference=reference,
            instruction_without_reference="sheet without reference",
        ),
        aspect_ratio="16:9",
        image_size="1K",
    )


def expansion_plan(sheet, reference=None, cell_index=5):
    return GenerationPlan(
        shape=RequestShape(
            instruction="expand cell",
            images=(sheet,),
            reference=reference,
            instruction_without_reference="expand cell without reference",
        ),
        aspect_ratio="16:9",
        image_size="2K",
        expansion=CellExpansion(
            cell_index=cell_index,
            cropped_instruction="cropped with reference",
            cropped_instruction_without_reference="cropped without reference",
        ),
    )


def make_orchestrator(client, models=MODELS, config=NO_WAIT_RETRY_CONFIG, sleep=None):
    if sleep is None:
        return RetryOrchestrator(client, models, config)
    return RetryOrchestrator(client, models, config, sleep=sleep)


class TestCompositeLadder:
    """Tests for the contact sheet retry ladder."""

    @pytest.mark.asyncio
    async def test_first_model_success(self, fake_client, success, source_image):
        client = fake_client([success()])

        result = await make_orchestrator(client).run(composite_plan(source_image))

        assert result.success
        assert result.model_used == "model-a"
        assert result.attempt_count == 1

    @pytest.mark.asyncio
    async def test_filtered_advances_to_next_model(self, fake_client, success, failure, source_image):
        client = fake_client([failure(FILTERED), success()])

        result = await make_orchestrator(client).run(composite_plan(source_image))

        assert result.success
        assert [c.model for c in client.calls] == ["model-a", "model-b"]
        assert not result.cropped

    @pytest.mark.asyncio
    async def test_malformed_drops_reference(self, fake_client, success, failure, source_image, reference_image):
        """Test the attempt after a malformed rejection carries no reference."""
        client = fake_client([failure(MALFORMED), success()])

        result = await make_orchestrator(client).run(composite_plan(source_image, reference_image))

        first, second = client.calls
        assert result.success
        assert result.reference_dropped
        assert first.images == (source_image, reference_image)
        assert second.images == (source_image,)
        assert second.model == "model-a"
        assert second.instruction == "sheet without reference"
        assert result.attempts[1].state == OrchestratorState.DROP_REFERENCE_RETRY

    @pytest.mark.asyncio
    async def test_drop_reference_resumes_at_rejecting_model(
        self, fake_client, success, failure, source_image, reference_image
    ):
        client = fake_client([failure(TRANSIENT), failure(MALFORMED), success()])

        result = await make_orchestrator(client).run(composite_plan(source_image, reference_image))

        assert result.success
        assert [c.model for c in client.calls] == ["model-a", "model-b", "model-b"]

    @pytest.mark.asyncio
    async def test_malformed_without_reference_is_terminal(self, fake_client, failure, source_image):
        client = fake_client([failure(MALFORMED, "Request rejected by provider as malformed: bad")])

        result = await make_orchestrator(client).run(composite_plan(source_image))

        assert not result.success
        assert result.image is None
        assert result.attempt_count == 1
        assert result.category == MALFORMED
        assert "rejected" in result.message

    @pytest.mark.asyncio
    async def test_all_rejected_without_reference_help(
        self, fake_client, failure, source_image, reference_image
    ):
        """Test the failure message when dropping the reference did not help."""
        client = fake_client(lambda call: failure(MALFORMED))

        result = await make_orchestrator(client).run(composite_plan(source_image, reference_image))

        assert not result.success
        assert result.attempt_count == 3
        assert result.reference_dropped
        assert "rejected" in result.message
        assert "reference" in result.message

    @pytest.mark.asyncio
    async def test_empty_model_list(self, fake_client, source_image):
        client = fake_client([])

        result = await make_orchestrator(client, models=[]).run(composite_plan(source_image))

        assert not result.success
        assert "rejected" in result.message
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_backoff_waits(self, fake_client, failure, recording_sleep, source_image):
        """Test the short then long wait, both on the first model."""
        client = fake_client(lambda call: failure(TRANSIENT))

        result = await make_orchestrator(client, config=RetryConfig(), sleep=recording_sleep).run(
            composite_plan(source_image)
        )

        assert not result.success
        assert recording_sleep.waits == [3.0, 30.0]
        assert [c.model for c in client.calls] == ["model-a", "model-b", "model-a", "model-a"]
        assert result.attempts[2].state == OrchestratorState.SHORT_BACKOFF_RETRY
        assert result.attempts[3].state == OrchestratorState.LONG_BACKOFF_RETRY

    @pytest.mark.asyncio
    async def test_short_backoff_success(self, fake_client, success, failure, recording_sleep, source_image):
        client = fake_client([failure(NO_OUTPUT), failure(TRANSIENT), success()])

        result = await make_orchestrator(client, config=RetryConfig(), sleep=recording_sleep).run(
            composite_plan(source_image)
        )

        assert result.success
        assert recording_sleep.waits == [3.0]

    @pytest.mark.asyncio
    async def test_short_backoff_malformed_is_terminal(self, fake_client, failure, source_image):
        client = fake_client([failure(TRANSIENT), failure(TRANSIENT), failure(MALFORMED)])

        result = await make_orchestrator(client).run(composite_plan(source_image))

        assert not result.success
        assert result.attempt_count == 3
        assert result.category == MALFORMED

    @pytest.mark.asyncio
    async def test_backoff_disabled(self, fake_client, failure, source_image):
        client = fake_client(lambda call: failure(TRANSIENT))
        config = RetryConfig(enable_backoff=False)

        result = await make_orchestrator(client, config=config).run(composite_plan(source_image))

        assert result.attempt_count == 2

    @pytest.mark.asyncio
    async def test_most_diagnostic_message_wins(self, fake_client, failure, source_image):
        """Test a content filter explanation is preferred over later transient errors."""
        client = fake_client([
            failure(FILTERED, "Content filtered by provider: SAFETY"),
            failure(TRANSIENT, "timeout"),
            failure(TRANSIENT, "timeout"),
            failure(TRANSIENT, "timeout"),
        ])

        result = await make_orchestrator(client).run(composite_plan(source_image))

        assert result.category == FILTERED
        assert result.message == "Content filtered by provider: SAFETY"


class TestExpansionLadder:
    """Tests for the single-cell expansion ladder."""

    @pytest.mark.asyncio
    async def test_filter_triggers_crop(self, fake_client, success, failure, grid_image, cell_colors):
        """Test the attempt after a content filter sends the cropped cell."""
        client = fake_client([failure(FILTERED), success()])

        result = await make_orchestrator(client).run(expansion_plan(grid_image, cell_index=5))

        retry = client.calls[1]
        cell = Image.open(io.BytesIO(retry.images[0].data)).convert("RGB")

        assert result.success
        assert result.cropped
        assert len(retry.images) == 1
        assert retry.images[0] != grid_image
        assert cell.size == (100, 100)
        assert cell.getpixel((50, 50)) == cell_colors[4]
        assert retry.instruction == "cropped without reference"

    @pytest.mark.asyncio
    async def test_crop_first_then_drop_reference(
        self, fake_client, success, failure, grid_image, reference_image
    ):
        """Test the cropped variant with reference runs before the one without."""
        client = fake_client([
            failure(FILTERED),
            failure(FILTERED), failure(FILTERED),
            success(),
        ])

        result = await make_orchestrator(client).run(expansion_plan(grid_image, reference_image))

        with_ref, with_ref_b, without_ref = client.calls[1:]
        assert result.success
        assert result.cropped
        assert result.reference_dropped
        assert with_ref.images[-1] == reference_image
        assert with_ref.instruction == "cropped with reference"
        assert with_ref_b.images[-1] == reference_image
        assert without_ref.images[-1] != reference_image
        assert len(without_ref.images) == 1
        assert without_ref.instruction == "cropped without reference"

    @pytest.mark.asyncio
    async def test_malformed_with_reference_skips_to_without(
        self, fake_client, success, failure, grid_image, reference_image
    ):
        client = fake_client([failure(FILTERED), failure(MALFORMED), success()])

        result = await make_orchestrator(client).run(expansion_plan(grid_image, reference_image))

        assert result.success
        assert [len(c.images) for c in client.calls] == [2, 2, 1]
        assert [c.model for c in client.calls] == ["model-a", "model-a", "model-a"]

    @pytest.mark.asyncio
    async def test_filter_after_dropping_reference_crops(
        self, fake_client, success, failure, grid_image, reference_image
    ):
        client = fake_client([failure(MALFORMED), failure(FILTERED), success()])

        result = await make_orchestrator(client).run(expansion_plan(grid_image, reference_image))

        last = client.calls[-1]
        assert result.success
        assert result.reference_dropped
        assert result.cropped
        assert len(last.images) == 1
        assert last.instruction == "cropped without reference"

    @pytest.mark.asyncio
    async def test_transient_crop_failure_runs_backoff_with_crop(
        self, fake_client, failure, recording_sleep, grid_image
    ):
        """Test the backoff tail keeps the cropped request and the long expansion wait."""
        responses = [failure(FILTERED)] + [failure(TRANSIENT)] * 4
        client = fake_client(responses)

        result = await make_orchestrator(client, config=RetryConfig(), sleep=recording_sleep).run(
            expansion_plan(grid_image)
        )

        assert not result.success
        assert recording_sleep.waits == [3.0, 60.0]
        assert client.calls[-1].images == client.calls[1].images
        assert result.category == FILTERED

    @pytest.mark.asyncio
    async def test_crop_filtered_everywhere_fails(self, fake_client, failure, grid_image):
        client = fake_client(lambda call: failure(FILTERED))

        result = await make_orchestrator(client).run(expansion_plan(grid_image))

        assert not result.success
        assert result.category == FILTERED
        assert result.attempt_count == 3


    @pytest.mark.asyncio
    async def test_permission_denied_does_not_crop(self, grid_image):
        """A 403 from the provider walks the backoff tail on the full sheet."""
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(403, json={
                "error": {
                    "code": 403,
                    "message": "Requests to this API method are blocked.",
                    "status": "PERMISSION_DENIED",
                }
            })

        client = MediaGenerationClient("test-key", transport=httpx.MockTransport(handler))

        result = await make_orchestrator(client).run(expansion_plan(grid_image))

        assert not result.success
        assert result.category == TRANSIENT
        assert not result.cropped
        assert OrchestratorState.CROP_RETRY not in [a.state for a in result.attempts]
        assert len(requests) == 4


class TestTermination:
    """Tests for bounded termination."""

    def test_budgets(self, fake_client, source_image, grid_image):
        orchestrator = make_orchestrator(fake_client([]), models=["a", "b", "c"])

        assert orchestrator.attempt_budget(composite_plan(source_image)) == 8
        assert orchestrator.attempt_budget(expansion_plan(grid_image)) == 14

    @pytest.mark.asyncio
    @pytest.mark.parametrize("seed", range(40))
    async def test_random_failures_stay_within_budget(
        self, seed, fake_client, failure, grid_image, reference_image
    ):
        """Test any mix of failures terminates within the attempt budget."""
        rng = random.Random(seed)
        categories = list(ErrorCategory)
        client = fake_client(lambda call: failure(rng.choice(categories)))
        orchestrator = make_orchestrator(client, models=["a", "b", "c"])

        for plan in (
            composite_plan(grid_image, reference_image),
            expansion_plan(grid_image, reference_image, cell_index=rng.randint(1, 9)),
        ):
            result = await orchestrator.run(plan)

            assert not result.success
            assert result.attempt_count <= orchestrator.attempt_budget(plan)
            assert result.message
