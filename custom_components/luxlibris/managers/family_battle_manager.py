"""Family Battle Manager - Health scanning and batch repair of family records.

This manager handles all family battle consistency operations:
- Scanning families against the issue taxonomy
- Batch repair with one verified patch per family
- Dry-run repair scripts for operator review
- Student-link drift scan and repair

ARCHITECTURE:
- FamilyBattleManager = "The Mechanic" (STATEFUL writes to family/student records)
- BattleScanEngine / BattleRepairEngine = Pure detection and patch logic (STATELESS)

Each family (or student) is an independent unit. A unit's new record is
computed in full and swapped in with one assignment, so a unit either fully
applies or not at all. Storage is saved once per batch.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from .. import const
from ..engines.battle_repair_engine import BattleRepairEngine, RepairInvariantError
from ..engines.battle_scan_engine import BattleScanEngine
from ..helpers.bulk_helpers import async_fan_out
from ..store import (
    FamilyNotFoundError,
    get_record,
    iter_students,
    record_path,
    replace_record,
)
from ..utils.dt_utils import dt_now_iso
from ..utils.patch_utils import apply_patch
from .base_manager import BaseManager

if TYPE_CHECKING:
    from collections.abc import Iterable

    from homeassistant.core import HomeAssistant

    from ..coordinator import LuxLibrisDataCoordinator
    from ..type_defs import FamilyIssueReport, RepairPlan, StudentLinkDrift

__all__ = ["FamilyBattleManager", "FamilyNotFoundError", "RepairInvariantError"]


class FamilyBattleManager(BaseManager):
    """Manager for family battle health scans and repairs.

    Responsibilities:
    - Scan families and summarize findings
    - Repair families in a bounded concurrent batch
    - Render repair scripts without writing
    - Align student battle settings with their family

    NOT responsible for:
    - Running battles or awarding XP (outside this integration)
    """

    def __init__(
        self,
        hass: HomeAssistant,
        coordinator: LuxLibrisDataCoordinator,
    ) -> None:
        """Initialize the FamilyBattleManager.

        Args:
            hass: Home Assistant instance
            coordinator: The main Lux Libris coordinator
        """
        super().__init__(hass, coordinator)
        self._repair_lock = asyncio.Lock()

    async def async_setup(self) -> None:
        """Set up the FamilyBattleManager.

        Scans once the document is ready so a corrupted install shows up in
        the log without an operator asking.
        """
        self.listen(const.SIGNAL_SUFFIX_DATA_READY, self._on_data_ready)

    async def _on_data_ready(self, _payload: dict[str, Any]) -> None:
        """Log the startup health summary."""
        summary = BattleScanEngine.summarize(self.scan_families())
        if summary[const.ATTR_FAMILIES_WITH_ISSUES]:
            const.LOGGER.warning(
                "WARNING: %d families have battle issues: %s",
                summary[const.ATTR_FAMILIES_WITH_ISSUES],
                {k: v for k, v in summary[const.ATTR_ISSUE_COUNTS].items() if v},
            )

    # ────────────────────────────────────────────────────────────────
    # Scan
    # ────────────────────────────────────────────────────────────────

    def _select_families(self, family_ids: Iterable[str] | None) -> dict[str, Any]:
        """Return the families to act on, all of them when `family_ids` is None.

        Raises:
            FamilyNotFoundError: A requested id does not exist.
        """
        families = self.coordinator.families_data
        if family_ids is None:
            return dict(families)

        selected: dict[str, Any] = {}
        for family_id in family_ids:
            if family_id not in families:
                raise FamilyNotFoundError(family_id)
            selected[family_id] = families[family_id]
        return selected

    def scan_families(
        self, family_ids: Iterable[str] | None = None
    ) -> list[FamilyIssueReport]:
        """Scan families and return reports for those with at least one issue."""
        return BattleScanEngine.scan_families(self._select_families(family_ids))

    def health_summary(self) -> dict[str, Any]:
        """Return the summary of a full scan (used by the health sensor)."""
        return BattleScanEngine.summarize(self.scan_families())

    # ────────────────────────────────────────────────────────────────
    # Repair
    # ────────────────────────────────────────────────────────────────

    async def async_repair_families(
        self, family_ids: Iterable[str] | None = None
    ) -> dict[str, Any]:
        """Repair the given families (default: every family with issues).

        Returns:
            {success, failed, errors: ["<id>: <message>"], skipped_healthy,
             repaired: [ids]}
        """
        async with self._repair_lock:
            selected = self._select_families(family_ids)
            reports = BattleScanEngine.scan_families(selected)
            skipped_healthy = len(selected) - len(reports)
            repaired_at = dt_now_iso()

            async def _repair_one(family_id: str, family: Mapping[str, Any]) -> Any:
                patch = BattleRepairEngine.build_patch(family_id, family, repaired_at)
                return family_id, family, apply_patch(dict(family), patch)

            batch = await async_fan_out(
                [
                    (report[const.ATTR_FAMILY_ID], selected[report[const.ATTR_FAMILY_ID]])
                    for report in reports
                ],
                _repair_one,
                limit=self.coordinator.bulk_concurrency,
                label="Family repair",
            )

            families = self.coordinator.families_data
            repaired: list[str] = []
            errors = [f"{error['id']}: {error['error']}" for error in batch["errors"]]
            for family_id, original, patched in batch["succeeded"]:
                if families.get(family_id) is not original:
                    errors.append(f"{family_id}: record changed during repair")
                    continue
                families[family_id] = patched
                repaired.append(family_id)

            if repaired:
                self.coordinator._persist_and_update()
                self.emit(const.SIGNAL_SUFFIX_FAMILIES_REPAIRED, family_ids=repaired)

        const.LOGGER.info(
            "INFO: Family repair complete: %d repaired, %d failed, %d already healthy",
            len(repaired),
            len(errors),
            skipped_healthy,
        )
        return {
            "success": len(repaired),
            "failed": len(errors),
            "errors": errors,
            "skipped_healthy": skipped_healthy,
            "repaired": repaired,
        }

    def generate_repair_script(self, family_ids: Iterable[str] | None = None) -> str:
        """Render the repairs that would be applied, without writing anything.

        Raises:
            RepairInvariantError: A family's computed patch would not heal it.
        """
        selected = self._select_families(family_ids)
        generated_at = dt_now_iso()
        plans: list[RepairPlan] = [
            BattleRepairEngine.plan_repair(
                report,
                selected[report[const.ATTR_FAMILY_ID]],
                generated_at,
                const.REPAIRED_BY_SCRIPT,
            )
            for report in BattleScanEngine.scan_families(selected)
        ]
        return BattleRepairEngine.render_script(plans, generated_at)

    # ────────────────────────────────────────────────────────────────
    # Student Links
    # ────────────────────────────────────────────────────────────────

    def scan_student_links(self) -> list[StudentLinkDrift]:
        """Report students whose battle settings disagree with their family."""
        return BattleScanEngine.find_student_link_drift(
            self.coordinator.families_data, iter_students(self.coordinator._data)
        )

    async def async_repair_student_links(self) -> dict[str, Any]:
        """Align every drifted student's battle settings with its family.

        Returns:
            {success, failed, errors: [{student_id, error}]}
        """
        async with self._repair_lock:
            data = self.coordinator._data
            drifts = self.scan_student_links()
            repaired_at = dt_now_iso()

            async def _repair_one(student_id: str, drift: StudentLinkDrift) -> Any:
                path = record_path(drift, const.DATA_SCHOOL_STUDENTS)
                student = get_record(data, path)
                patch = BattleRepairEngine.build_student_link_patch(drift, repaired_at)
                return path, student, apply_patch(student, patch)

            batch = await async_fan_out(
                [(drift[const.ATTR_STUDENT_ID], drift) for drift in drifts],
                _repair_one,
                limit=self.coordinator.bulk_concurrency,
                label="Student link repair",
            )

            errors = [
                {const.ATTR_STUDENT_ID: error["id"], "error": error["error"]}
                for error in batch["errors"]
            ]
            success = 0
            for path, original, patched in batch["succeeded"]:
                if get_record(data, path) is not original:
                    errors.append(
                        {
                            const.ATTR_STUDENT_ID: path[-1],
                            "error": "record changed during repair",
                        }
                    )
                    continue
                replace_record(data, path, patched)
                success += 1

            if success:
                self.coordinator._persist_and_update()

        const.LOGGER.info(
            "INFO: Student link repair complete: %d repaired, %d failed",
            success,
            len(errors),
        )
        return {"success": success, "failed": len(errors), "errors": errors}
