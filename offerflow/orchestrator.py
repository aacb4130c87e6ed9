"""Workflow orchestrator - runs the enabled stages of one workflow in order.

State machine (linear, no backward transitions):

    pending -> [fetching] -> [analyzing] -> [organizing] -> complete
                    \\______________\\______________\\______-> failed | cancelled

Disabled stages are skipped entirely. ``total_steps`` is the number of
enabled stages, fixed before the first one starts; ``current_step``
increments at the start of each stage. Every transition appends exactly one
WorkflowProgress entry, and the full log is returned whatever the outcome.

Cancellation is cooperative: ``cancel_workflow(id)`` marks the id in the
process-wide registry and the orchestrator checks the marker before each
stage. A model call already in flight is not interrupted.

Stage errors are not retried here; each stage has its own retry budget.
"""

from __future__ import annotations

import asyncio
import dataclasses
import inspect
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

from offerflow.agents.stage_base import StageContext
from offerflow.core import (
    AgentError,
    CancellationRegistry,
    CostTracker,
    LLMClient,
    OfferStore,
    StageTimeout,
    WorkflowCancelled,
    get_cancellation_registry,
    get_logger,
)
from offerflow.phases import (
    AnalyzePhase,
    FetchPhase,
    OrganizePhase,
    PhaseContext,
    PhaseRunner,
    WorkflowResources,
    WorkflowRunState,
)
from offerflow.pydantic_models import (
    WorkflowData,
    WorkflowInputs,
    WorkflowOptions,
    WorkflowProgress,
    WorkflowResult,
    WorkflowState,
)

ProgressSink = Callable[[WorkflowProgress], Any]


def error_message(error: BaseException) -> str:
    """The caller-facing message of an error, kept verbatim."""
    if isinstance(error, AgentError):
        return error.message
    return str(error) or type(error).__name__


class WorkflowOrchestrator:
    """Coordinates the Fetch, Analyze and Organize phases of a workflow.

    Usage:
        orchestrator = WorkflowOrchestrator()
        result = await orchestrator.run("wf-42", inputs, WorkflowOptions(enable_organize=True))
    """

    def __init__(
        self,
        stage_context: StageContext | None = None,
        cancellation: CancellationRegistry | None = None,
        offer_store: OfferStore | None = None,
        verbose: bool = False,
        log_dir: str | Path | None = None,
    ):
        """Initialize the orchestrator.

        Args:
            stage_context: Collaborators for the stage runners. Defaults to the
                litellm client and an environment-backed credential resolver.
            cancellation: Registry of cancelled workflow ids. Defaults to the
                process-wide registry.
            offer_store: Used to load ``WorkflowInputs.offer_ids``.
            verbose: If True, print DEBUG logs.
            log_dir: Directory for per-workflow log files.
        """
        self.stage_context = stage_context or StageContext.default()
        self._cancellation = cancellation
        self.offer_store = offer_store
        self.logger = get_logger(verbose=verbose, log_dir=log_dir)

    @property
    def cancellation(self) -> CancellationRegistry:
        if self._cancellation is not None:
            return self._cancellation
        return get_cancellation_registry()

    def _context_for(
        self,
        options: WorkflowOptions,
        api_key: str | None,
        user_id: str | None,
    ) -> StageContext:
        """Per-run stage context: the run's model, provider and key, a fresh cost tracker."""
        cost_tracker = CostTracker()
        client = self.stage_context.client
        if isinstance(client, LLMClient):
            client = LLMClient(cost_tracker=cost_tracker)
        return dataclasses.replace(
            self.stage_context,
            client=client,
            model=options.model,
            provider=options.provider,
            api_key=api_key or self.stage_context.api_key,
            user_id=user_id or self.stage_context.user_id,
            cost_tracker=cost_tracker,
        )

    async def run(
        self,
        workflow_id: str,
        inputs: WorkflowInputs,
        options: WorkflowOptions | None = None,
        on_progress: ProgressSink | None = None,
        api_key: str | None = None,
        user_id: str | None = None,
    ) -> WorkflowResult:
        """Run one workflow to a terminal state. Never raises for stage errors.

        Args:
            workflow_id: Opaque id, also used for cancellation.
            inputs: Profile, search domain/context, optional offers.
            options: Stage switches and stage parameters.
            on_progress: Called with every progress entry as it is appended
                (plain function or coroutine function).
            api_key: Transient caller key used for every stage.
            user_id: Authenticated user whose stored key may be used.
        """
        options = options or WorkflowOptions()
        started = time.monotonic()
        progress: list[WorkflowProgress] = []
        stage_context = self._context_for(options, api_key, user_id)

        context = PhaseContext(
            resources=WorkflowResources(
                stage_context=stage_context,
                logger=self.logger,
                cost_tracker=stage_context.cost_tracker or CostTracker(),
            ),
            inputs=inputs,
            options=options,
            state=WorkflowRunState(offers=list(inputs.offers) if inputs.offers is not None else None),
        )

        all_phases: list[PhaseRunner] = [FetchPhase(context), AnalyzePhase(context), OrganizePhase(context)]
        phases = [phase for phase in all_phases if phase.enabled()]
        total_steps = len(phases)
        current_step = 0

        async def add_progress(state: WorkflowState, message: str) -> None:
            entry = WorkflowProgress(
                state=state,
                current_step=current_step,
                total_steps=total_steps,
                message=message,
            )
            progress.append(entry)
            if on_progress is not None:
                await self._notify(on_progress, entry)

        def finish(state: WorkflowState, data: WorkflowData | None = None, error: str | None = None) -> WorkflowResult:
            duration = int((time.monotonic() - started) * 1000)
            cost = context.cost_tracker.to_dict() if context.cost_tracker.calls else None
            self.logger.end_workflow(state.value, cost=cost)
            return WorkflowResult(
                success=state == WorkflowState.COMPLETE,
                state=state,
                progress=progress,
                data=data,
                error=error,
                duration=duration,
            )

        self.logger.start_workflow(workflow_id, [p.name for p in phases])
        try:
            await add_progress(WorkflowState.PENDING, "Workflow initialized")
            if inputs.offers is None and inputs.offer_ids is not None:
                context.offers = await self._load_offers(inputs.offer_ids)

            for phase in phases:
                if self.cancellation.is_cancelled(workflow_id):
                    raise WorkflowCancelled(workflow_id)
                current_step += 1
                await add_progress(phase.state, phase.start_message())
                await self._run_phase(phase, options.stage_timeout)

            await add_progress(WorkflowState.COMPLETE, "Workflow completed successfully")
            return finish(
                WorkflowState.COMPLETE,
                data=WorkflowData(
                    offers=context.offers,
                    analysis=context.analysis,
                    organization=context.organization,
                    stages=context.state.stage_meta,
                ),
            )

        except WorkflowCancelled:
            self.logger.milestone(f"Workflow {workflow_id} cancelled at step {current_step}/{total_steps}")
            await add_progress(WorkflowState.CANCELLED, "Workflow was cancelled by user")
            return finish(WorkflowState.CANCELLED, error="Workflow cancelled")

        except Exception as e:
            message = error_message(e)
            self.logger.error(f"Workflow {workflow_id} failed", exc=e)
            await add_progress(WorkflowState.FAILED, f"Workflow failed: {message}")
            return finish(WorkflowState.FAILED, error=message)

        finally:
            self.cancellation.clear(workflow_id)

    async def _run_phase(self, phase: PhaseRunner, timeout: float | None) -> None:
        if timeout is None:
            await phase.run()
            return
        try:
            await asyncio.wait_for(phase.run(), timeout)
        except asyncio.TimeoutError as e:
            raise StageTimeout(f"{phase.name} stage timed out after {timeout:g}s", phase.name.lower()) from e

    async def _load_offers(self, offer_ids: list[str]):
        if self.offer_store is None:
            raise ValueError("offer_ids given but no offer store is configured")
        return await self.offer_store.find_by_ids(offer_ids)

    async def _notify(self, sink: ProgressSink, entry: WorkflowProgress) -> None:
        try:
            outcome = sink(entry)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            self.logger.warning(f"Progress callback failed: {e}")


# Module-level entry points

async def run_workflow(
    workflow_id: str,
    inputs: WorkflowInputs,
    options: WorkflowOptions | None = None,
    on_progress: ProgressSink | None = None,
    **orchestrator_kwargs: Any,
) -> WorkflowResult:
    """Run a workflow with a default orchestrator.

    Extra keyword arguments go to WorkflowOrchestrator (stage_context,
    cancellation, offer_store, verbose, log_dir).
    """
    orchestrator = WorkflowOrchestrator(**orchestrator_kwargs)
    return await orchestrator.run(workflow_id, inputs, options, on_progress=on_progress)


def cancel_workflow(workflow_id: str, registry: CancellationRegistry | None = None) -> bool:
    """Mark ``workflow_id`` as cancelled; it stops at its next stage boundary."""
    if registry is None:
        registry = get_cancellation_registry()
    registry.mark_cancelled(workflow_id)
    return True
