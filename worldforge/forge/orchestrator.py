"""Forge pipeline orchestrator.

One ``ForgePipeline`` drives one forge run through

    idle -> validating -> generating -> scanning -> review -> saving -> saved

halting back at ``idle`` when pre-validation finds problems and dropping to
``error`` on any failure. State is an explicit ``PipelineState`` snapshot;
every change is pushed to subscribers.

Steps run strictly one after another. A second ``generate`` /
``proceed_anyway`` while a run is in flight is rejected synchronously with
``reason="busy"``. ``reset()`` abandons an in-flight run: its underlying calls
finish, but their results are dropped.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Optional, Union

from worldforge.forge.context import build_prompt_context
from worldforge.forge.errors import CommitFailed, PipelineStateError
from worldforge.forge.gateway import EntityStore, new_id
from worldforge.forge.generator import ContentGenerator
from worldforge.forge.minter import CommitContext, mint_stub_entities, save_forged_entity
from worldforge.forge import resolver
from worldforge.forge.payload import build_generated_payload
from worldforge.forge.pre_validation import validate_pre_generation
from worldforge.forge.scanner import scan_generated_content
from worldforge.schemas import (
    CommitDecisions,
    CommitMetadata,
    CommitResult,
    ConflictResolution,
    ForgeInput,
    GenerateResult,
    PipelineState,
    PreValidationResult,
)
from worldforge.utils.logging_config import CampaignAdapter, get_logger

StateListener = Callable[[PipelineState], None]

# Statuses from which a fresh generate() is accepted
_STARTABLE = frozenset({"idle", "error"})
# Statuses from which proceed_anyway() is accepted (idle only with input)
_PROCEEDABLE = frozenset({"idle", "error", "review"})


class _Abandoned(Exception):
    """The run was reset while a step was awaiting."""


class ForgePipeline:
    def __init__(
        self,
        store: EntityStore,
        generator: ContentGenerator,
        campaign_id: str,
        forge_type: str,
        *,
        stub_id: Optional[str] = None,
        pipeline_id: Optional[str] = None,
    ):
        self.id = pipeline_id or new_id()
        self.store = store
        self.generator = generator
        self.campaign_id = campaign_id
        self.forge_type = forge_type
        self.stub_id = stub_id

        self._state = PipelineState()
        self._listeners: list[StateListener] = []
        self._run = 0
        self._in_flight: Optional[int] = None
        self._logger = CampaignAdapter(
            get_logger("worldforge.orchestrator"), campaign_id,
            pipeline_id=self.id, forge_type=forge_type,
        )

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> PipelineState:
        return self._state.model_copy(deep=True)

    @property
    def busy(self) -> bool:
        return self._in_flight is not None

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set(self, run: Optional[int] = None, **changes: Any) -> None:
        if run is not None and run != self._run:
            raise _Abandoned()
        previous = self._state.status
        self._state = self._state.model_copy(update=changes)
        if self._state.status != previous:
            self._logger.info("%s -> %s", previous, self._state.status, extra={"status": self._state.status})
        self._notify()

    def _notify(self) -> None:
        snapshot = self.state
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                self._logger.exception("state listener failed")

    def _fail(self, run: int, message: str) -> None:
        self._logger.error("pipeline failed: %s", message, extra={"status": "error"})
        self._set(run, status="error", error=message, output=None, scan_result=None)

    def _begin(self) -> int:
        self._run += 1
        self._in_flight = self._run
        return self._run

    def _end(self, run: int) -> None:
        if self._in_flight == run:
            self._in_flight = None

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    async def generate(self, input: Union[ForgeInput, dict[str, Any]]) -> GenerateResult:
        """Validate, then generate and scan.

        Halts at ``idle`` with ``reason="validation_failed"`` when a conflict
        blocks, or ``reason="needs_review"`` when there are only warnings.
        """
        if self.busy or self._state.status not in _STARTABLE:
            return GenerateResult(success=False, reason="busy")

        forge_input = input if isinstance(input, ForgeInput) else ForgeInput.model_validate(input)
        run = self._begin()
        try:
            self._set(
                run, status="validating", input=forge_input, output=None,
                pre_validation=None, scan_result=None, error=None,
            )
            try:
                pre = await validate_pre_generation(
                    self.store, self.campaign_id, self.forge_type, forge_input,
                    {"stub_id": self.stub_id},
                )
            except Exception as exc:
                self._fail(run, f"Validation failed: {exc}")
                return GenerateResult(success=False, reason="error")

            if not pre.can_proceed:
                self._set(run, status="idle", pre_validation=pre)
                return GenerateResult(success=False, reason="validation_failed")
            if pre.has_issues:
                self._set(run, status="idle", pre_validation=pre)
                return GenerateResult(success=False, reason="needs_review")

            self._set(run, pre_validation=pre)
            return await self._generate_and_scan(run)
        except _Abandoned:
            self._logger.info("run abandoned by reset")
            return GenerateResult(success=False, reason="error")
        finally:
            self._end(run)

    async def proceed_anyway(self) -> GenerateResult:
        """Skip validation and generate from the current input.

        Accepted from ``review`` (regenerate), ``error`` (retry) or ``idle``
        after a halt. Refused while a blocking conflict is unresolved.
        """
        status = self._state.status
        if self.busy or status not in _PROCEEDABLE or self._state.input is None:
            return GenerateResult(success=False, reason="busy")

        pre = self._state.pre_validation
        if pre is not None and any(c.blocks for c in pre.conflicts):
            self._logger.info("proceed refused: unresolved blocking conflict")
            return GenerateResult(success=False, reason="validation_failed")

        run = self._begin()
        try:
            return await self._generate_and_scan(run)
        except _Abandoned:
            self._logger.info("run abandoned by reset")
            return GenerateResult(success=False, reason="error")
        finally:
            self._end(run)

    async def _generate_and_scan(self, run: int) -> GenerateResult:
        forge_input = self._state.input
        self._set(run, status="generating", output=None, scan_result=None, error=None)
        start = time.monotonic()

        try:
            context = await build_prompt_context(self.store, self.campaign_id, forge_input)
            raw = await self.generator.generate(self.forge_type, forge_input, context)
            payload = build_generated_payload(self.forge_type, raw)
        except Exception as exc:
            self._check(run)
            self._fail(run, str(exc) or exc.__class__.__name__)
            return GenerateResult(success=False, reason="error")

        self._set(run, status="scanning", output=payload)

        try:
            scan = await scan_generated_content(
                self.store, self.campaign_id, payload.text,
                {
                    "current_entity_name": payload.name or forge_input.name,
                    "list_candidates": payload.list_candidates,
                    "forge_type": self.forge_type,
                },
            )
        except Exception as exc:
            self._check(run)
            self._fail(run, f"Scanning failed: {exc}")
            return GenerateResult(success=False, reason="error")

        self._set(run, status="review", scan_result=scan)
        self._logger.info(
            "ready for review | %d discoveries", len(scan.discoveries),
            extra={"duration_ms": int((time.monotonic() - start) * 1000)},
        )
        return GenerateResult(success=True)

    def _check(self, run: int) -> None:
        if run != self._run:
            raise _Abandoned()

    # ------------------------------------------------------------------
    # Review
    # ------------------------------------------------------------------

    def update_discovery(self, discovery_id: str, patch: dict[str, Any]) -> None:
        if self._state.status != "review" or self._state.scan_result is None:
            raise PipelineStateError(f"Discoveries can only be edited in review (status={self._state.status})")
        scan = self._state.scan_result
        discoveries = resolver.update_discovery(scan.discoveries, discovery_id, patch)
        self._set(scan_result=scan.model_copy(update={"discoveries": discoveries}))

    def update_conflict(self, conflict_id: str, resolution: ConflictResolution) -> None:
        pre = self._state.pre_validation
        if self.busy or pre is None:
            raise PipelineStateError("There are no conflicts to resolve")
        conflicts = resolver.update_conflict(pre.conflicts, conflict_id, resolution)
        warnings = resolver.update_conflict(pre.warnings, conflict_id, resolution)
        self._set(pre_validation=PreValidationResult.build(conflicts, warnings))

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------

    async def commit(self, decisions: Union[CommitDecisions, dict[str, Any], None] = None) -> CommitResult:
        """Mint approved stubs, save the forged entity and its relationships.

        Only accepted in ``review``. Discoveries still ``pending`` are ignored.
        """
        if self.busy or self._state.status != "review" or self._state.output is None:
            return CommitResult(success=False, error=f"Cannot commit while {self._state.status}")

        if decisions is None:
            decisions = CommitDecisions()
        elif not isinstance(decisions, CommitDecisions):
            decisions = CommitDecisions.model_validate(decisions)

        scan = self._state.scan_result
        discoveries = decisions.discoveries if decisions.discoveries is not None else (scan.discoveries if scan else [])
        pre = self._state.pre_validation
        conflicts = decisions.conflicts if decisions.conflicts is not None else (pre.conflicts if pre else [])
        if any(c.blocks for c in conflicts):
            return CommitResult(success=False, error="A blocking conflict is unresolved")

        metadata = decisions.metadata
        if metadata is None and self._state.input is not None:
            inp = self._state.input
            metadata = CommitMetadata(owner_id=inp.owner_id, location_id=inp.location_id, faction_id=inp.faction_id)

        payload = self._state.output
        run = self._begin()
        try:
            self._set(
                run, status="saving",
                scan_result=scan.model_copy(update={"discoveries": discoveries}) if scan else None,
            )
            start = time.monotonic()

            try:
                minted = await mint_stub_entities(
                    self.store, self.campaign_id, discoveries, self.forge_type,
                    source={"entity_name": payload.name} if payload.name else None,
                )
            except Exception as exc:
                self._check(run)
                self._fail(run, f"Stub creation failed: {exc}")
                return CommitResult(success=False, error=str(exc))

            try:
                persisted = await save_forged_entity(
                    self.store, self.campaign_id, self.forge_type, payload,
                    CommitContext(discoveries=discoveries, stubs=minted.stubs, metadata=metadata),
                )
            except CommitFailed as exc:
                self._check(run)
                self._fail(run, str(exc))
                return CommitResult(success=False, stubs=minted.stubs, errors=minted.errors, error=str(exc))

            self._set(run, status="saved")
            self._logger.info(
                "committed %r with %d stubs", persisted.entity.name, len(minted.stubs),
                extra={"entity_id": persisted.entity.id, "duration_ms": int((time.monotonic() - start) * 1000)},
            )
            return CommitResult(
                success=True,
                entity=persisted.entity,
                stubs=minted.stubs,
                errors=minted.errors + persisted.errors,
            )
        except _Abandoned:
            self._logger.info("commit abandoned by reset")
            return CommitResult(success=False, error="Pipeline was reset during commit")
        finally:
            self._end(run)

    def reset(self) -> None:
        """Discard everything and return to ``idle``; any in-flight run is abandoned."""
        self._run += 1
        self._in_flight = None
        self._state = PipelineState()
        self._logger.info("reset", extra={"status": "idle"})
        self._notify()
