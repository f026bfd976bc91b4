"""Phase Manager - The only writer of the program phase.

This manager handles every program config mutation:
- Validated phase transitions (table edges only)
- The manual close override
- The academic year rollover with its bulk clear of per-year data
- Scheduled calendar transitions on the midnight heartbeat

ARCHITECTURE:
- PhaseManager = STATEFUL owner of the program config singleton
- PhaseEngine = Transition table and academic calendar (STATELESS)

Phase operations are serialized by one asyncio.Lock. The rollover clear is
resumable: cleared students and reset teachers are stamped with the new
academic year and skipped when the clear runs again.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from .. import const
from ..engines.phase_engine import (
    InvalidPhaseTransitionError,
    PhaseEngine,
    RolloverIncompleteError,
)
from ..helpers.bulk_helpers import async_fan_out
from ..store import (
    get_record,
    iter_students,
    iter_teachers,
    record_key,
    record_path,
    replace_record,
)
from ..utils.dt_utils import dt_now_iso, dt_today_local
from .base_manager import BaseManager

if TYPE_CHECKING:
    from collections.abc import Mapping
    from datetime import date

    from homeassistant.core import HomeAssistant

    from ..coordinator import LuxLibrisDataCoordinator
    from ..type_defs import RolloverReport, StudentRef

__all__ = ["InvalidPhaseTransitionError", "PhaseManager", "RolloverIncompleteError"]

REASON_SCHEDULED = "scheduled"
REASON_ROLLOVER = "rollover"


def _cleared_student(student: Mapping[str, Any], new_year: str) -> dict[str, Any]:
    """Return a student with per-year data reset and cross-year data kept."""
    return {
        **student,
        const.DATA_STUDENT_BOOKS_SUBMITTED_THIS_YEAR: 0,
        const.DATA_STUDENT_BOOKSHELF: [],
        const.DATA_STUDENT_VOTES: [],
        const.DATA_STUDENT_HAS_VOTED: False,
        const.DATA_STUDENT_VOTED_FOR: None,
        const.DATA_STUDENT_CURRENT_YEAR_GOAL: None,
        const.DATA_STUDENT_ACHIEVEMENTS: [],
        const.DATA_STUDENT_LAST_CLEARED_YEAR: new_year,
    }


def _reset_teacher(teacher: Mapping[str, Any], new_year: str) -> dict[str, Any]:
    """Return a teacher ready for a new selection round.

    The new cap is last year's selection count, so a teacher who selected
    nothing starts the round with a cap of 0.
    """
    selected = teacher.get(const.DATA_TEACHER_SELECTED_NOMINEES)
    count = len(selected) if isinstance(selected, list) else 0
    return {
        **teacher,
        const.DATA_TEACHER_PREVIOUS_SELECTION_COUNT: count,
        const.DATA_TEACHER_SELECTION_CAP: count,
        const.DATA_TEACHER_SELECTED_NOMINEES: [],
        const.DATA_TEACHER_RELEASED_TO_STUDENTS: False,
        const.DATA_TEACHER_LAST_RESET_YEAR: new_year,
    }


class PhaseManager(BaseManager):
    """Manager for the program phase state machine.

    Responsibilities:
    - Apply validated transitions and record phase history
    - Run and resume the academic year rollover
    - Apply scheduled transitions when auto transitions are enabled
    - Emit SIGNAL_SUFFIX_PHASE_CHANGED for every change
    """

    def __init__(
        self,
        hass: HomeAssistant,
        coordinator: LuxLibrisDataCoordinator,
    ) -> None:
        """Initialize the PhaseManager."""
        super().__init__(hass, coordinator)
        self._lock = asyncio.Lock()

    async def async_setup(self) -> None:
        """Subscribe to the midnight heartbeat."""
        self.listen(const.SIGNAL_SUFFIX_MIDNIGHT_ROLLOVER, self._on_midnight_rollover)

    async def _on_midnight_rollover(self, _payload: dict[str, Any]) -> None:
        """Apply a scheduled transition when one is due."""
        if not self.coordinator.auto_phase_transitions:
            return
        await self.async_check_scheduled_phase()

    # ────────────────────────────────────────────────────────────────
    # Read
    # ────────────────────────────────────────────────────────────────

    @property
    def phase(self) -> str:
        """Return the current program phase."""
        return self.coordinator.program_config[const.DATA_CONFIG_PROGRAM_PHASE]

    @property
    def academic_year(self) -> str:
        """Return the current academic year."""
        return self.coordinator.program_config[const.DATA_CONFIG_ACADEMIC_YEAR]

    @property
    def rollover_pending(self) -> bool:
        """Return whether the last rollover clear still has failures."""
        return bool(
            self.coordinator.program_config.get(const.DATA_CONFIG_ROLLOVER_PENDING)
        )

    def get_phase(self) -> dict[str, Any]:
        """Return the phase, academic year, next phase and phase display info."""
        info = PhaseEngine.phase_info(self.phase)
        schedule = PhaseEngine.schedule_dates(self.academic_year)
        return {
            "phase": self.phase,
            const.ATTR_ACADEMIC_YEAR: self.academic_year,
            const.ATTR_ROLLOVER_PENDING: self.rollover_pending,
            const.ATTR_NEXT_PHASE: info[const.ATTR_NEXT_PHASE],
            "name": info["name"],
            "message": info["message"],
            "permissions": info["permissions"],
            "schedule": {phase: day.isoformat() for phase, day in schedule.items()},
            const.DATA_CONFIG_LAST_MODIFIED: self.coordinator.program_config.get(
                const.DATA_CONFIG_LAST_MODIFIED
            ),
        }

    # ────────────────────────────────────────────────────────────────
    # Transitions
    # ────────────────────────────────────────────────────────────────

    async def async_transition_phase(
        self, target_phase: str, reason: str | None = None
    ) -> dict[str, Any]:
        """Move the program to `target_phase` along an allowed edge.

        Returns:
            {old_phase, new_phase, academic_year}, plus `rollover` when the
            edge started a new academic year.

        Raises:
            InvalidPhaseTransitionError: The edge is not allowed.
            RolloverIncompleteError: Teacher selection requested while the
                year clear still has failures.
        """
        async with self._lock:
            return await self._async_transition(target_phase, reason)

    async def async_close_program(self, reason: str | None = None) -> dict[str, Any]:
        """Manual override into CLOSED from any other phase.

        Raises:
            InvalidPhaseTransitionError: The program is already closed.
        """
        async with self._lock:
            plan = PhaseEngine.plan_close(self.phase)
            self._write_config(plan.to_phase, reason=reason)
            return self._finish_transition(plan.from_phase, plan.to_phase)

    async def async_rollover_academic_year(
        self, reason: str | None = None
    ) -> RolloverReport:
        """Run RESULTS -> SETUP -> TEACHER_SELECTION as one operator action.

        Called in SETUP while a rollover is pending, it resumes the clear.
        A partial failure leaves the program in SETUP and is reported in the
        returned RolloverReport, never raised.

        Raises:
            InvalidPhaseTransitionError: The program is not in a phase a
                rollover can start from.
        """
        async with self._lock:
            current = self.phase
            if current == const.PHASE_SETUP and self.rollover_pending:
                const.LOGGER.info(
                    "INFO: Resuming pending rollover into %s", self.academic_year
                )
                report = await self._async_clear_year(self.academic_year)
            elif PhaseEngine.can_transition(current, const.PHASE_SETUP):
                result = await self._async_transition(
                    const.PHASE_SETUP, reason or REASON_ROLLOVER
                )
                report = result["rollover"]
            else:
                raise InvalidPhaseTransitionError(current, const.PHASE_SETUP)

            if report["completed"]:
                await self._async_transition(
                    const.PHASE_TEACHER_SELECTION, reason or REASON_ROLLOVER
                )
            else:
                const.LOGGER.warning(
                    "WARNING: Rollover into %s incomplete (%d failed); staying in %s",
                    report["new_year"],
                    report["failed"],
                    const.PHASE_SETUP,
                )
            report["phase"] = self.phase
            return report

    async def async_check_scheduled_phase(
        self, today: date | None = None
    ) -> dict[str, Any]:
        """Apply the one scheduled transition due today, if any.

        Returns:
            {changed: False, phase} when nothing is due, otherwise the
            transition result with `changed` True.
        """
        async with self._lock:
            target = PhaseEngine.scheduled_target(
                self.phase, self.academic_year, today or dt_today_local()
            )
            if target is None:
                return {"changed": False, "phase": self.phase}

            const.LOGGER.info(
                "INFO: Scheduled phase transition %s -> %s", self.phase, target
            )
            result = await self._async_transition(target, REASON_SCHEDULED)
            return {"changed": True, **result}

    # ────────────────────────────────────────────────────────────────
    # Internals (callers hold the lock)
    # ────────────────────────────────────────────────────────────────

    async def _async_transition(
        self, target_phase: str, reason: str | None
    ) -> dict[str, Any]:
        current = self.phase
        plan = PhaseEngine.plan_transition(current, target_phase)

        if plan.to_phase == const.PHASE_TEACHER_SELECTION and self.rollover_pending:
            report = await self._async_clear_year(self.academic_year)
            if not report["completed"]:
                raise RolloverIncompleteError(report["new_year"], report["failed"])

        if not plan.starts_new_year:
            self._write_config(plan.to_phase, reason=reason)
            return self._finish_transition(plan.from_phase, plan.to_phase)

        new_year = PhaseEngine.next_academic_year(self.academic_year)
        self._write_config(
            plan.to_phase, reason=reason, academic_year=new_year, rollover_pending=True
        )
        self.coordinator._persist()
        report = await self._async_clear_year(new_year)
        result = self._finish_transition(plan.from_phase, plan.to_phase)
        result["rollover"] = report
        return result

    def _write_config(
        self,
        phase: str,
        *,
        reason: str | None = None,
        academic_year: str | None = None,
        rollover_pending: bool | None = None,
    ) -> None:
        """Swap in a new program config with the phase change recorded."""
        config = self.coordinator.program_config
        now = dt_now_iso()
        new_year = academic_year or config[const.DATA_CONFIG_ACADEMIC_YEAR]
        history = [
            *config.get(const.DATA_CONFIG_PHASE_HISTORY, []),
            {
                const.DATA_PHASE_HISTORY_FROM: config[const.DATA_CONFIG_PROGRAM_PHASE],
                const.DATA_PHASE_HISTORY_TO: phase,
                const.DATA_PHASE_HISTORY_YEAR: new_year,
                const.DATA_PHASE_HISTORY_CHANGED_AT: now,
                const.DATA_PHASE_HISTORY_REASON: reason,
            },
        ][-const.PHASE_HISTORY_MAX_ENTRIES :]

        updated = {
            **config,
            const.DATA_CONFIG_PROGRAM_PHASE: phase,
            const.DATA_CONFIG_ACADEMIC_YEAR: new_year,
            const.DATA_CONFIG_LAST_MODIFIED: now,
            const.DATA_CONFIG_PHASE_HISTORY: history,
        }
        if rollover_pending is not None:
            updated[const.DATA_CONFIG_ROLLOVER_PENDING] = rollover_pending
        self.coordinator._data[const.DATA_PROGRAM_CONFIG] = updated

    def _finish_transition(self, old_phase: str, new_phase: str) -> dict[str, Any]:
        """Persist, notify, and describe a completed transition."""
        self.coordinator._persist_and_update()
        self.emit(
            const.SIGNAL_SUFFIX_PHASE_CHANGED,
            old_phase=old_phase,
            new_phase=new_phase,
            academic_year=self.academic_year,
        )
        const.LOGGER.info(
            "INFO: Program phase changed %s -> %s (%s)",
            old_phase,
            new_phase,
            self.academic_year,
        )
        return {
            "old_phase": old_phase,
            "new_phase": new_phase,
            const.ATTR_ACADEMIC_YEAR: self.academic_year,
        }

    async def _async_clear_year(self, new_year: str) -> RolloverReport:
        """Clear per-year student data and reset teachers for `new_year`.

        Records already stamped for `new_year` are skipped, so running the
        clear again after a partial failure only touches what is left.
        """
        data = self.coordinator._data
        limit = self.coordinator.bulk_concurrency

        students = list(iter_students(data))
        pending_students = [
            (ref, student)
            for ref, student in students
            if student.get(const.DATA_STUDENT_LAST_CLEARED_YEAR) != new_year
        ]
        pending_teachers = [
            (ref, teacher)
            for ref, teacher in iter_teachers(data)
            if teacher.get(const.DATA_TEACHER_LAST_RESET_YEAR) != new_year
        ]

        async def _clear_student(
            _key: str, unit: tuple[StudentRef, Mapping[str, Any]]
        ) -> Any:
            ref, student = unit
            return (
                record_path(ref, const.DATA_SCHOOL_STUDENTS),
                student,
                _cleared_student(student, new_year),
            )

        async def _reset_one_teacher(
            _key: str, unit: tuple[StudentRef, Mapping[str, Any]]
        ) -> Any:
            ref, teacher = unit
            return (
                record_path(ref, const.DATA_SCHOOL_TEACHERS),
                teacher,
                _reset_teacher(teacher, new_year),
            )

        student_batch = await async_fan_out(
            [(record_key(unit[0]), unit) for unit in pending_students],
            _clear_student,
            limit=limit,
            label="Rollover student clear",
        )
        teacher_batch = await async_fan_out(
            [(record_key(unit[0]), unit) for unit in pending_teachers],
            _reset_one_teacher,
            limit=limit,
            label="Rollover teacher reset",
        )

        errors: list[dict[str, Any]] = [
            {"record": error["id"], "kind": "student", "error": error["error"]}
            for error in student_batch["errors"]
        ] + [
            {"record": error["id"], "kind": "teacher", "error": error["error"]}
            for error in teacher_batch["errors"]
        ]

        applied = {"student": 0, "teacher": 0}
        for kind, batch in (("student", student_batch), ("teacher", teacher_batch)):
            for path, original, updated in batch["succeeded"]:
                if get_record(data, path) is not original:
                    errors.append(
                        {
                            "record": "/".join(path[1::2]),
                            "kind": kind,
                            "error": "record changed during rollover",
                        }
                    )
                    continue
                replace_record(data, path, updated)
                applied[kind] += 1

        failed = len(errors)
        report: RolloverReport = {
            "new_year": new_year,
            "students_cleared": applied["student"],
            "students_skipped": len(students) - len(pending_students),
            "teachers_reset": applied["teacher"],
            "failed": failed,
            "errors": errors,
            "completed": failed == 0,
            "phase": self.phase,
        }

        config = self.coordinator.program_config
        self.coordinator._data[const.DATA_PROGRAM_CONFIG] = {
            **config,
            const.DATA_CONFIG_ROLLOVER_PENDING: failed > 0,
            const.DATA_CONFIG_LAST_ROLLOVER: dict(report),
        }
        self.coordinator._persist_and_update()

        const.LOGGER.info(
            "INFO: Rollover clear into %s: %d students cleared, %d skipped, "
            "%d teachers reset, %d failed",
            new_year,
            report["students_cleared"],
            report["students_skipped"],
            report["teachers_reset"],
            failed,
        )
        return report
