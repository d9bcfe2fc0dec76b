"""
Retry Orchestrator

Bounded state machine that drives MediaGenerationClient attempts across an
ordered model list and a fixed ladder of degradations:

    TRY_MODEL -> DROP_REFERENCE_RETRY -> SHORT_BACKOFF_RETRY -> LONG_BACKOFF_RETRY

Cell expansion adds CROP_RETRY: when the provider filters the full contact
sheet, the requested cell is cut out and sent on its own, first with the
reference image (if still allowed), then without it.

Every intermediate failure is classified and logged; only the final,
exhausted failure is surfaced, in an OrchestrationResult.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Protocol, Sequence, Tuple

from mvstudio.core.exceptions import GenerationError, ImageDataError
from mvstudio.core.logging_config import get_logger
from mvstudio.core.retry import RetryConfig, SleepFunc, max_attempts, wait_before_retry
from mvstudio.media.error_classifier import ErrorCategory
from mvstudio.media.image_preprocessor import crop_cell
from mvstudio.media.types import GenerationOutcome, ImagePayload

logger = get_logger("media.orchestrator")

NO_MODELS_MESSAGE = "Request rejected: no generation models available"


class GenerationBackend(Protocol):
    """Anything that can make one generation attempt."""

    async def generate(
        self,
        model: str,
        instruction: str,
        images: Sequence[ImagePayload] = (),
        *,
        aspect_ratio: str = ...,
        image_size: Optional[str] = None
    ) -> GenerationOutcome:
        ...


class OrchestratorState(Enum):
    """States of the retry ladder."""
    TRY_MODEL = "try_model"
    DROP_REFERENCE_RETRY = "drop_reference_retry"
    CROP_RETRY = "crop_retry"
    SHORT_BACKOFF_RETRY = "short_backoff_retry"
    LONG_BACKOFF_RETRY = "long_backoff_retry"
    SUCCESS = "success"
    FAILURE = "failure"

    @property
    def terminal(self) -> bool:
        return self in (OrchestratorState.SUCCESS, OrchestratorState.FAILURE)


# =============================================================================
# REQUEST & RESULT TYPES
# =============================================================================

@dataclass(frozen=True)
class RequestShape:
    """
    What is sent on one attempt.

    `images` are always sent; `reference` is the optional reference image
    appended after them. `instruction_without_reference` replaces the
    instruction once the reference has been dropped.
    """
    instruction: str
    images: Tuple[ImagePayload, ...] = ()
    reference: Optional[ImagePayload] = None
    instruction_without_reference: Optional[str] = None

    @property
    def parts(self) -> Tuple[ImagePayload, ...]:
        if self.reference is None:
            return self.images
        return self.images + (self.reference,)

    def without_reference(self) -> "RequestShape":
        return RequestShape(
            instruction=self.instruction_without_reference or self.instruction,
            images=self.images,
        )


@dataclass(frozen=True)
class CellExpansion:
    """Crop fallback settings for a single-cell expansion."""
    cell_index: int
    cropped_instruction: str
    cropped_instruction_without_reference: Optional[str] = None


@dataclass(frozen=True)
class GenerationPlan:
    """Everything the orchestrator needs for one logical request."""
    shape: RequestShape
    aspect_ratio: str
    image_size: Optional[str] = None
    expansion: Optional[CellExpansion] = None
    label: str = "generation"

    @property
    def is_expansion(self) -> bool:
        return self.expansion is not None


@dataclass(frozen=True)
class AttemptRecord:
    """One provider call made by the orchestrator."""
    state: OrchestratorState
    model: str
    category: Optional[ErrorCategory]
    message: str
    with_reference: bool
    cropped: bool

    @property
    def success(self) -> bool:
        return self.category is None


@dataclass
class OrchestrationResult:
    """Terminal outcome of an orchestrated request."""
    success: bool
    image: Optional[ImagePayload] = None
    category: Optional[ErrorCategory] = None
    message: str = ""
    attempts: List[AttemptRecord] = field(default_factory=list)
    model_used: Optional[str] = None
    reference_dropped: bool = False
    cropped: bool = False

    @property
    def attempt_count(self) -> int:
        return len(self.attempts)


class _Run:
    """Mutable bookkeeping for one orchestrated request."""

    def __init__(self, plan: GenerationPlan, budget: int):
        self.plan = plan
        self.shape = plan.shape
        self.budget = budget
        self.attempts: List[AttemptRecord] = []
        self.reference_dropped = False
        self.cropped = False
        self.resume_index = 0
        self.image: Optional[ImagePayload] = None
        self.model_used: Optional[str] = None
        self.last_outcome: Optional[GenerationOutcome] = None
        self.final_message: Optional[str] = None
        self.final_category: Optional[ErrorCategory] = None
        self._failures: Dict[ErrorCategory, str] = {}

    def note_failure(self, outcome: GenerationOutcome) -> None:
        self.last_outcome = outcome
        self._failures[outcome.category] = outcome.message

    def most_diagnostic(self) -> Tuple[Optional[ErrorCategory], str]:
        """Highest-ranked category seen, with its most recent message."""
        if not self._failures:
            return None, ""
        category = max(self._failures, key=lambda c: c.diagnostic_rank)
        return category, self._failures[category]

    def fail(self, category: ErrorCategory, message: str) -> OrchestratorState:
        self.final_category = category
        self.final_message = message
        return OrchestratorState.FAILURE


# =============================================================================
# ORCHESTRATOR
# =============================================================================

class RetryOrchestrator:
    """
    Drives generation attempts until success or a bounded failure.

    Usage:
        orchestrator = RetryOrchestrator(client, ["gemini-2.5-flash-image"])
        result = await orchestrator.run(plan)
    """

    MAX_TRANSITIONS = 16

    def __init__(
        self,
        client: GenerationBackend,
        models: Sequence[str],
        retry_config: Optional[RetryConfig] = None,
        sleep: SleepFunc = asyncio.sleep,
        cropper: Callable[[ImagePayload, int], ImagePayload] = crop_cell
    ):
        self.client = client
        self.models = list(models)
        self.retry_config = retry_config or RetryConfig()
        self._sleep = sleep
        self._cropper = cropper

    def attempt_budget(self, plan: GenerationPlan) -> int:
        """Maximum provider calls for a plan: 2N+2 for sheets, 4N+2 for expansions."""
        stages = 4 if plan.is_expansion else 2
        return max_attempts(len(self.models), stages, self.retry_config)

    async def run(self, plan: GenerationPlan) -> OrchestrationResult:
        """
        Run the retry ladder for one request.

        Args:
            plan: Request shape, output hints and optional crop fallback

        Returns:
            OrchestrationResult; never raises on provider failures
        """
        run = _Run(plan, self.attempt_budget(plan))

        if not self.models:
            logger.error(f"{plan.label}: {NO_MODELS_MESSAGE}")
            return OrchestrationResult(
                success=False,
                category=ErrorCategory.MALFORMED_REQUEST,
                message=NO_MODELS_MESSAGE,
            )

        handlers = {
            OrchestratorState.TRY_MODEL: self._try_model,
            OrchestratorState.DROP_REFERENCE_RETRY: self._drop_reference_retry,
            OrchestratorState.CROP_RETRY: self._crop_retry,
            OrchestratorState.SHORT_BACKOFF_RETRY: self._short_backoff_retry,
            OrchestratorState.LONG_BACKOFF_RETRY: self._long_backoff_retry,
        }

        state = OrchestratorState.TRY_MODEL
        transitions = 0
        while not state.terminal:
            transitions += 1
            if transitions > self.MAX_TRANSITIONS:
                raise GenerationError(
                    f"{plan.label}: retry ladder did not terminate",
                    {"state": state.value, "attempts": len(run.attempts)},
                )
            logger.debug(f"{plan.label}: entering {state.value}")
            state = await handlers[state](run)

        return self._finish(run, state)

    # =========================================================================
    # STATE HANDLERS
    # =========================================================================

    async def _try_model(self, run: _Run) -> OrchestratorState:
        for index, model in enumerate(self.models):
            outcome = await self._attempt(run, OrchestratorState.TRY_MODEL, model)
            if outcome.success:
                return OrchestratorState.SUCCESS

            if outcome.category == ErrorCategory.MALFORMED_REQUEST:
                if run.shape.reference is not None:
                    run.resume_index = index
                    return OrchestratorState.DROP_REFERENCE_RETRY
                return run.fail(outcome.category, outcome.message)

            if outcome.category == ErrorCategory.CONTENT_FILTERED and run.plan.is_expansion:
                return OrchestratorState.CROP_RETRY

        return self._after_models_exhausted(run)

    async def _drop_reference_retry(self, run: _Run) -> OrchestratorState:
        run.shape = run.shape.without_reference()
        run.reference_dropped = True
        logger.info(f"{run.plan.label}: request rejected, retrying without the reference image")

        for model in self.models[run.resume_index:]:
            outcome = await self._attempt(run, OrchestratorState.DROP_REFERENCE_RETRY, model)
            if outcome.success:
                return OrchestratorState.SUCCESS
            if outcome.category == ErrorCategory.CONTENT_FILTERED and run.plan.is_expansion:
                return OrchestratorState.CROP_RETRY

        last = run.last_outcome.message if run.last_outcome else ""
        return run.fail(
            ErrorCategory.MALFORMED_REQUEST,
            f"Request rejected by provider; retrying without the reference image did not help. "
            f"Last error: {last}",
        )

    async def _crop_retry(self, run: _Run) -> OrchestratorState:
        expansion = run.plan.expansion
        sheet = run.plan.shape.images[0] if run.plan.shape.images else None
        if sheet is None:
            category, message = run.most_diagnostic()
            return run.fail(category, message)

        try:
            cell = self._cropper(sheet, expansion.cell_index)
        except ImageDataError as e:
            logger.warning(f"{run.plan.label}: could not crop cell {expansion.cell_index}: {e}")
            category, message = run.most_diagnostic()
            return run.fail(category, message)

        run.cropped = True
        logger.info(f"{run.plan.label}: content filtered, retrying with cell {expansion.cell_index} cropped out")

        # Crop first, then drop the reference
        variants = []
        if run.shape.reference is not None:
            variants.append(RequestShape(
                instruction=expansion.cropped_instruction,
                images=(cell,),
                reference=run.shape.reference,
            ))
        variants.append(RequestShape(
            instruction=expansion.cropped_instruction_without_reference or expansion.cropped_instruction,
            images=(cell,),
        ))

        outcome = None
        for variant in variants:
            run.shape = variant
            if variant.reference is None and run.plan.shape.reference is not None:
                run.reference_dropped = True
            for model in self.models:
                outcome = await self._attempt(run, OrchestratorState.CROP_RETRY, model)
                if outcome.success:
                    return OrchestratorState.SUCCESS
                if outcome.category == ErrorCategory.MALFORMED_REQUEST:
                    break

        if outcome.category == ErrorCategory.MALFORMED_REQUEST:
            return run.fail(outcome.category, outcome.message)
        if outcome.category.retryable:
            return self._after_models_exhausted(run)
        category, message = run.most_diagnostic()
        return run.fail(category, message)

    async def _short_backoff_retry(self, run: _Run) -> OrchestratorState:
        await wait_before_retry(self.retry_config.short_backoff_seconds, run.plan.label, self._sleep)
        outcome = await self._attempt(run, OrchestratorState.SHORT_BACKOFF_RETRY, self.models[0])
        if outcome.success:
            return OrchestratorState.SUCCESS
        if outcome.category == ErrorCategory.MALFORMED_REQUEST:
            return run.fail(outcome.category, outcome.message)
        return OrchestratorState.LONG_BACKOFF_RETRY

    async def _long_backoff_retry(self, run: _Run) -> OrchestratorState:
        if run.plan.is_expansion:
            seconds = self.retry_config.expansion_long_backoff_seconds
        else:
            seconds = self.retry_config.long_backoff_seconds
        await wait_before_retry(seconds, run.plan.label, self._sleep)
        outcome = await self._attempt(run, OrchestratorState.LONG_BACKOFF_RETRY, self.models[0])
        if outcome.success:
            return OrchestratorState.SUCCESS
        category, message = run.most_diagnostic()
        return run.fail(category, message)

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _after_models_exhausted(self, run: _Run) -> OrchestratorState:
        if self.retry_config.enable_backoff:
            return OrchestratorState.SHORT_BACKOFF_RETRY
        category, message = run.most_diagnostic()
        return run.fail(category, message)

    async def _attempt(self, run: _Run, state: OrchestratorState, model: str) -> GenerationOutcome:
        if len(run.attempts) >= run.budget:
            raise GenerationError(
                f"{run.plan.label}: attempt budget of {run.budget} exceeded",
                {"state": state.value},
            )

        shape = run.shape
        outcome = await self.client.generate(
            model,
            shape.instruction,
            shape.parts,
            aspect_ratio=run.plan.aspect_ratio,
            image_size=run.plan.image_size,
        )

        run.attempts.append(AttemptRecord(
            state=state,
            model=model,
            category=None if outcome.success else outcome.category,
            message=outcome.message,
            with_reference=shape.reference is not None,
            cropped=run.cropped,
        ))

        if outcome.success:
            run.image = outcome.image
            run.model_used = model
            logger.info(f"{run.plan.label}: {model} succeeded in {state.value} (attempt {len(run.attempts)})")
        else:
            run.note_failure(outcome)
            logger.warning(
                f"{run.plan.label}: {model} failed in {state.value} "
                f"[{outcome.category.value}] {outcome.message}"
            )
        return outcome

    @staticmethod
    def _finish(run: _Run, state: OrchestratorState) -> OrchestrationResult:
        if state == OrchestratorState.SUCCESS:
            return OrchestrationResult(
                success=True,
                image=run.image,
                attempts=run.attempts,
                model_used=run.model_used,
                reference_dropped=run.reference_dropped,
                cropped=run.cropped,
            )

        category = run.final_category
        message = run.final_message
        if category is None:
            category, message = run.most_diagnostic()
        logger.error(f"{run.plan.label}: giving up after {len(run.attempts)} attempt(s): {message}")
        return OrchestrationResult(
            success=False,
            category=category,
            message=message or "Generation failed",
            attempts=run.attempts,
            reference_dropped=run.reference_dropped,
            cropped=run.cropped,
        )
