"""
Generation Orchestrator.

Drives each generation unit through its lifecycle:

    pending/ready -> generating -> completed | failed

For one unit: fetch reference materials, upload each to the generation
service (skipping failures), build the prompt for an over-generated batch,
call the service with bounded retries for transport failures, normalize,
validate, persist the accepted questions with unit-scoped ordinals, and
record token usage.

A unit's failure is recorded on that unit and never aborts the run.
"""
import asyncio
import logging
import math
import time
import uuid
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from exam_generator import config
from exam_generator.core.ledger import UsageLedger
from exam_generator.core.meta_reference import strip_editorial_notes
from exam_generator.core.normalizer import normalize_response
from exam_generator.core.ports import GenerationBoundary, MaterialSource, UnitStore
from exam_generator.core.prompt_builder import build_prompt
from exam_generator.core.retry import retry_with_backoff
from exam_generator.core.validator import ProtocolValidator, check_distributions
from exam_generator.exceptions import (
    BatchValidationError,
    GenerationError,
    InvalidTransitionError,
    NoUsableMaterialsError,
)
from exam_generator.models.protocol_models import Protocol
from exam_generator.models.question_models import AcceptedQuestion, RawQuestion
from exam_generator.models.run_models import (
    ALLOWED_TRANSITIONS,
    GenerationRun,
    GenerationUnit,
    TokenUsage,
    UnitOutcome,
    UnitStatus,
)
from exam_generator.models.validation_models import ValidationResult
from exam_generator.protocols.registry import ProtocolRegistry, get_registry

logger = logging.getLogger(__name__)


class _UnitWork:
    """Mutable scratch state for one unit attempt."""

    def __init__(self):
        self.warnings: List[str] = []
        self.accepted: List[AcceptedQuestion] = []
        self.token_usage = TokenUsage()


class GenerationOrchestrator:
    """Run generation units against a generation boundary and a unit store."""

    def __init__(
        self,
        boundary: GenerationBoundary,
        materials: MaterialSource,
        store: UnitStore,
        registry: Optional[ProtocolRegistry] = None,
        validator: Optional[ProtocolValidator] = None,
        ledger: Optional[UsageLedger] = None,
        max_attempts: int = config.MAX_GENERATION_ATTEMPTS,
        overgeneration_factor: float = config.OVERGENERATION_FACTOR,
        max_concurrency: int = config.MAX_CONCURRENT_UNITS,
        warning_cap: int = config.RUN_WARNING_CAP,
        pricing_mode: str = "standard",
        sleep=asyncio.sleep,
    ):
        self.boundary = boundary
        self.materials = materials
        self.store = store
        self.registry = registry or get_registry()
        self.validator = validator or ProtocolValidator()
        self.ledger = ledger or UsageLedger()
        self.max_attempts = max_attempts
        self.overgeneration_factor = overgeneration_factor
        self.max_concurrency = max_concurrency
        self.warning_cap = warning_cap
        self.pricing_mode = pricing_mode
        self.sleep = sleep

    # ===========================================
    # Public operations
    # ===========================================

    async def run_generation(
        self,
        unit_id: str,
        regenerate: bool = False,
        total_target: Optional[int] = None,
    ) -> UnitOutcome:
        """
        Generate, validate and persist questions for one unit.

        Args:
            unit_id: Unit to run.
            regenerate: Run again even if the unit is already completed.
            total_target: Question count of the whole paper, for the prompt.

        Returns:
            UnitOutcome with success flag, number of questions persisted and capped warnings.

        Raises:
            ConfigurationError: If no protocol matches the unit's exam and subject.
        """
        outcome, _ = await self._run_unit(unit_id, regenerate, total_target, run_id=None)
        return outcome

    async def run_units(self, unit_ids: Iterable[str], regenerate: bool = False) -> GenerationRun:
        """
        Run many units with bounded concurrency and aggregate the results.

        Every unit's protocol is resolved before any work starts, so a
        configuration problem fails the run immediately and leaves all
        units untouched. After that, unit failures are isolated.

        Raises:
            ConfigurationError: If any unit has no matching protocol.
        """
        unit_ids = list(dict.fromkeys(unit_ids))
        units = [await self.store.get_unit(uid) for uid in unit_ids]
        for unit in units:
            self.registry.lookup(unit.exam, unit.subject)

        run_id = uuid.uuid4().hex[:12]
        total_target = sum(u.target_count for u in units)
        semaphore = asyncio.Semaphore(self.max_concurrency)
        logger.info(
            "Run %s: %d units, %d questions requested", run_id, len(units), total_target,
            extra={"run_id": run_id})

        async def bounded(uid: str):
            async with semaphore:
                return await self._run_unit(uid, regenerate, total_target, run_id)

        results = await asyncio.gather(*(bounded(uid) for uid in unit_ids))
        run = self._aggregate(results, units)
        logger.info(
            "Run %s finished: %d generated, %d completed, %d failed",
            run_id, run.total_generated, len(run.units_completed), len(run.units_failed),
            extra={"run_id": run_id})
        return run

    # ===========================================
    # Unit lifecycle
    # ===========================================

    async def _set_status(self, unit: GenerationUnit, status: UnitStatus) -> None:
        if status not in ALLOWED_TRANSITIONS[unit.status]:
            raise InvalidTransitionError(
                f"Unit {unit.unit_id} cannot move from {unit.status.value} to {status.value}",
                details={"unit_id": unit.unit_id, "from": unit.status.value, "to": status.value})
        await self.store.update_unit_status(unit.unit_id, status)
        unit.status = status

    async def _run_unit(
        self,
        unit_id: str,
        regenerate: bool,
        total_target: Optional[int],
        run_id: Optional[str],
    ) -> Tuple[UnitOutcome, List[AcceptedQuestion]]:
        started = time.perf_counter()
        unit = await self.store.get_unit(unit_id)
        protocol = self.registry.lookup(unit.exam, unit.subject)
        log_extra = {"unit_id": unit_id, "run_id": run_id}

        if unit.status == UnitStatus.COMPLETED and not regenerate:
            logger.info("Unit %s already completed, skipping", unit_id, extra=log_extra)
            return UnitOutcome(
                unit_id=unit_id, success=True, status=unit.status, skipped=True), []

        if unit.status == UnitStatus.GENERATING:
            logger.warning("Unit %s was left generating, resuming", unit_id, extra=log_extra)

        work = _UnitWork()
        try:
            await self._set_status(unit, UnitStatus.GENERATING)
            await self._generate(unit, protocol, total_target or unit.target_count, run_id, work)
            await self._set_status(unit, UnitStatus.COMPLETED)
        except GenerationError as e:
            return await self._fail(unit, e.to_dict(), work, started, log_extra), []
        except Exception as e:
            logger.exception("Unexpected error in unit %s", unit_id, extra=log_extra)
            reason = {"code": "UNEXPECTED_ERROR", "message": f"{type(e).__name__}: {e}"}
            return await self._fail(unit, reason, work, started, log_extra), []

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        for warning in work.warnings:
            logger.warning("Unit %s: %s", unit_id, warning, extra=log_extra)
        logger.info(
            "Unit %s completed: %d questions accepted in %dms",
            unit_id, len(work.accepted), elapsed_ms, extra=dict(log_extra, elapsed_ms=elapsed_ms))

        return UnitOutcome(
            unit_id=unit_id,
            success=True,
            questions_generated=len(work.accepted),
            warnings=work.warnings[:self.warning_cap],
            status=unit.status,
            elapsed_ms=elapsed_ms,
            token_usage=work.token_usage,
        ), work.accepted

    async def _fail(self, unit, reason, work, started, log_extra) -> UnitOutcome:
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        logger.error(
            "Unit %s failed [%s]: %s", unit.unit_id, reason["code"], reason["message"],
            extra=dict(log_extra, reason=reason, elapsed_ms=elapsed_ms))
        for warning in work.warnings:
            logger.warning("Unit %s: %s", unit.unit_id, warning, extra=log_extra)

        if unit.status == UnitStatus.GENERATING:
            try:
                await self._set_status(unit, UnitStatus.FAILED)
            except Exception as status_error:
                logger.error(
                    "Could not mark unit %s failed: %s", unit.unit_id, status_error, extra=log_extra)

        return UnitOutcome(
            unit_id=unit.unit_id,
            success=False,
            warnings=work.warnings[:self.warning_cap],
            status=unit.status,
            reason=reason,
            elapsed_ms=elapsed_ms,
            token_usage=work.token_usage,
        )

    async def _generate(
        self,
        unit: GenerationUnit,
        protocol: Protocol,
        total_target: int,
        run_id: Optional[str],
        work: _UnitWork,
    ) -> None:
        materials = await self.materials.fetch_reference_materials(unit)
        handles = []
        for material in materials:
            try:
                handles.append(await self.boundary.upload(material.file_ref))
            except Exception as e:
                reason = e.message if isinstance(e, GenerationError) else f"{type(e).__name__}: {e}"
                work.warnings.append(f"Skipped material '{material.title}': {reason}")
        if not handles:
            raise NoUsableMaterialsError(
                f"None of the {len(materials)} reference materials for unit {unit.unit_id} could be uploaded",
                details={"unit_id": unit.unit_id, "materials": len(materials)})

        batch_target = math.ceil(unit.target_count * self.overgeneration_factor)
        resolved = protocol.resolve(unit.difficulty, batch_target)
        prompt = build_prompt(protocol, resolved, unit.chapter_name, batch_target, total_target)

        response = await retry_with_backoff(
            lambda: self.boundary.generate(prompt, handles),
            max_attempts=self.max_attempts,
            sleep=self.sleep,
            description=f"Unit {unit.unit_id} generation",
        )
        work.token_usage = response.token_usage
        self.ledger.record(
            response.token_usage,
            response.model or getattr(self.boundary, "model_name", config.MODEL_NAME),
            self.pricing_mode,
            unit_id=unit.unit_id,
            run_id=run_id,
            metadata={"chapter": unit.chapter_name, "batch_target": batch_target},
        )

        batch = normalize_response(response.raw_text)
        work.warnings.extend(batch.warnings)

        result = self.validator.validate(batch.questions, protocol, unit.difficulty)
        kept = self._select_accepted(batch.questions, result, protocol, work)

        persisted = await self.store.count_persisted(unit.unit_id)
        work.accepted = [
            AcceptedQuestion(
                unit_id=unit.unit_id,
                question_order=persisted + position,
                question=question.model_copy(
                    update={"explanation": strip_editorial_notes(question.explanation)}),
            )
            for position, question in enumerate(kept, start=1)
        ]
        await self.store.persist_questions(unit.unit_id, work.accepted)

    def _select_accepted(
        self,
        questions: Sequence[RawQuestion],
        result: ValidationResult,
        protocol: Protocol,
        work: _UnitWork,
    ) -> List[RawQuestion]:
        """
        Questions free of hard errors, in order.

        Raises:
            BatchValidationError: On batch-level errors, when nothing survives,
                or when the survivors still hold an over-long high-density run.
        """
        batch_errors = [e for e in result.errors if e.is_batch_level]
        if batch_errors:
            raise BatchValidationError(
                f"Batch rejected: {batch_errors[0].message}", result)

        rejected = result.rejected_indices()
        for error in result.errors:
            if error.question_index is not None:
                work.warnings.append(f"Rejected {error.message}")
        work.warnings.extend(w.message for w in result.warnings)

        kept = [q for i, q in enumerate(questions) if i not in rejected]
        if not kept:
            raise BatchValidationError(
                f"All {len(questions)} generated questions had hard errors", result)

        runs = self.validator.find_high_density_runs(kept, protocol.cognitive_load)
        if runs:
            raise BatchValidationError(
                f"Batch rejected: accepted questions still contain a high-density run "
                f"({runs[0].message})",
                ValidationResult(valid=False, errors=runs))
        return kept

    # ===========================================
    # Run aggregation
    # ===========================================

    def _aggregate(
        self,
        results: List[Tuple[UnitOutcome, List[AcceptedQuestion]]],
        units: List[GenerationUnit],
    ) -> GenerationRun:
        run = GenerationRun()
        all_warnings: List[str] = []
        by_profile: Dict[Tuple[str, str], List[RawQuestion]] = defaultdict(list)
        units_by_id = {u.unit_id: u for u in units}

        for outcome, accepted in results:
            run.outcomes.append(outcome)
            run.unit_timings_ms[outcome.unit_id] = outcome.elapsed_ms
            run.token_usage = run.token_usage + outcome.token_usage
            if outcome.success:
                run.units_completed.append(outcome.unit_id)
                run.total_generated += outcome.questions_generated
            else:
                run.units_failed.append(outcome.unit_id)
                all_warnings.append(
                    f"Unit {outcome.unit_id} failed: {outcome.reason['message']}")
            all_warnings.extend(f"Unit {outcome.unit_id}: {w}" for w in outcome.warnings)

            unit = units_by_id[outcome.unit_id]
            key = (unit.exam, unit.subject)
            by_profile[key + (unit.difficulty,)].extend(a.question for a in accepted)

        for (exam, subject, difficulty), questions in by_profile.items():
            if not questions:
                continue
            protocol = self.registry.lookup(exam, subject)
            for issue in check_distributions(questions, protocol, difficulty):
                run.aggregate_warnings.append(f"[{protocol.name}, {difficulty}] {issue.message}")
        for warning in run.aggregate_warnings:
            logger.warning("Run distribution: %s", warning)

        run.warnings_total = len(all_warnings)
        run.warnings = all_warnings[:self.warning_cap]
        return run
