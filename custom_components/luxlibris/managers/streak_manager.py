"""Streak Manager - Writes derived reading streaks back to student records.

ARCHITECTURE:
- StreakManager = STATEFUL writer of the cached streak fields
- StreakEngine = Pure derivation from the session log (STATELESS)

The session log is the source of truth. A student record is only rewritten
when a derived field actually changed, so recomputing twice is a no-op.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from .. import const
from ..engines.streak_engine import StreakEngine
from ..helpers.bulk_helpers import async_fan_out
from ..store import (
    StudentNotFoundError,
    find_student,
    get_record,
    iter_students,
    record_key,
    record_path,
    replace_record,
)
from ..utils.dt_utils import dt_now_iso
from .base_manager import BaseManager

if TYPE_CHECKING:
    from collections.abc import Mapping
    from datetime import date

    from homeassistant.core import HomeAssistant

    from ..coordinator import LuxLibrisDataCoordinator
    from ..type_defs import MigrationReport, StreakResult, StudentRef

__all__ = ["StreakManager", "StudentNotFoundError"]


class StreakManager(BaseManager):
    """Manager for reading streak recomputation.

    Responsibilities:
    - Recompute one student on demand
    - Migrate every student in a bounded concurrent batch
    - Refresh lapsed current streaks after midnight
    """

    def __init__(
        self,
        hass: HomeAssistant,
        coordinator: LuxLibrisDataCoordinator,
    ) -> None:
        """Initialize the StreakManager."""
        super().__init__(hass, coordinator)

    async def async_setup(self) -> None:
        """Subscribe to the midnight heartbeat."""
        self.listen(const.SIGNAL_SUFFIX_MIDNIGHT_ROLLOVER, self._on_midnight_rollover)

    async def _on_midnight_rollover(self, _payload: dict[str, Any]) -> None:
        """Refresh every student so yesterday's unbroken streaks expire on time."""
        await self.async_migrate_all_students()

    def _derive(
        self, student: Mapping[str, Any], reference_date: date | None = None
    ) -> StreakResult:
        return StreakEngine.derive(
            student.get(const.DATA_STUDENT_READING_SESSIONS),
            reference_date,
            self.coordinator.session_completion_minutes,
        )

    def _updated_record(
        self, student: Mapping[str, Any], result: StreakResult, stamp: str
    ) -> dict[str, Any] | None:
        """Return the student with `result` applied, or None when nothing changed."""
        if not StreakEngine.differs(student, result):
            return None
        return {
            **student,
            **result,
            const.DATA_STUDENT_STREAKS_RECALCULATED_AT: stamp,
        }

    def recompute_streak(
        self, student_id: str, reference_date: date | None = None
    ) -> StreakResult:
        """Derive one student's streak fields and write them if they changed.

        Raises:
            StudentNotFoundError: No school holds the student.
        """
        data = self.coordinator._data
        ref, student = find_student(data, student_id)
        result = self._derive(student, reference_date)

        updated = self._updated_record(student, result, dt_now_iso())
        if updated is not None:
            replace_record(data, record_path(ref, const.DATA_SCHOOL_STUDENTS), updated)
            self.coordinator._persist_and_update()
            self.emit(const.SIGNAL_SUFFIX_STREAKS_UPDATED, student_ids=[student_id])
            const.LOGGER.debug(
                "DEBUG: Streak fields updated for student '%s': %s", student_id, result
            )
        return result

    async def async_migrate_all_students(
        self, reference_date: date | None = None
    ) -> MigrationReport:
        """Recompute every student; only changed records are rewritten.

        Returns:
            MigrationReport {processed, updated, unchanged, errors}; each error
            names the student, school and entity it came from.
        """
        data = self.coordinator._data
        stamp = dt_now_iso()
        students = list(iter_students(data))

        async def _migrate_one(
            _student_id: str, unit: tuple[StudentRef, Mapping[str, Any]]
        ) -> Any:
            ref, student = unit
            result = self._derive(student, reference_date)
            return ref, student, self._updated_record(student, result, stamp)

        batch = await async_fan_out(
            [(record_key(ref), (ref, student)) for ref, student in students],
            _migrate_one,
            limit=self.coordinator.bulk_concurrency,
            label="Streak migration",
        )

        refs = {record_key(ref): ref for ref, _student in students}
        errors: list[dict[str, Any]] = [
            {**refs[error["id"]], "error": error["error"]} for error in batch["errors"]
        ]
        updated_ids: list[str] = []
        unchanged = 0
        for ref, original, updated in batch["succeeded"]:
            if updated is None:
                unchanged += 1
                continue
            path = record_path(ref, const.DATA_SCHOOL_STUDENTS)
            if get_record(data, path) is not original:
                errors.append({**ref, "error": "record changed during migration"})
                continue
            replace_record(data, path, updated)
            updated_ids.append(ref[const.ATTR_STUDENT_ID])

        if updated_ids:
            self.coordinator._persist_and_update()
            self.emit(const.SIGNAL_SUFFIX_STREAKS_UPDATED, student_ids=updated_ids)

        report: MigrationReport = {
            "processed": len(students),
            "updated": len(updated_ids),
            "unchanged": unchanged,
            "errors": errors,
        }
        const.LOGGER.info(
            "INFO: Streak migration complete: %d processed, %d updated, %d failed",
            report["processed"],
            report["updated"],
            len(errors),
        )
        return report
