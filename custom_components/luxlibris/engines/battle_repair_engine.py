"""Battle Repair Engine - Pure patch computation for unhealthy family records.

Given a family record and its scan report, this engine computes ONE merged
dotted-path patch that resolves every issue, verifies the patched record is
healthy, and can render the same patch as a dry-run YAML script.

Per-issue policy (applied in taxonomy order; later patches win on overlap):
- malformed_record: replace unusable sub-structures, coerce counters
- dual_structure: max() of each win/tie counter, total = their sum, excess
  legacy/current total kept as unattributed_battles, legacy field deleted
- inconsistent_state: enable (and ensure history) when a week pointer or
  other battle data exists, otherwise clear the dangling week pointers
- missing_history: install the zeroed default history
- invalid_math: total_battles = children_wins + parent_wins + ties, any
  excess of the old total kept as unattributed_battles
- orphaned_data: synthesize a disabled current structure from legacy data,
  legacy field deleted

Each builder sees the record as already patched by the builders before it,
so the union converges on a record that re-scans clean. Applying the plan to
a healthy record is never needed: healthy records produce no plan.

ARCHITECTURE: This is a pure logic engine with NO Home Assistant dependencies.
Persisting the patch belongs in FamilyBattleManager.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from typing import TYPE_CHECKING, Any

import yaml

from .. import const
from ..utils.patch_utils import DELETE_FIELD, apply_patch, get_path, split_patch
from .battle_scan_engine import ISSUE_ORDER, BattleScanEngine

if TYPE_CHECKING:
    from ..type_defs import (
        FamilyIssue,
        FamilyIssueReport,
        Patch,
        RepairPlan,
        StudentLinkDrift,
    )

# Malformed records are normalized first, then re-scanned once for the
# remaining structural issues.
MAX_REPAIR_PASSES = 2

_BATTLE = const.DATA_FAMILY_BATTLE
_HISTORY_PATH = f"{const.DATA_FAMILY_BATTLE}.{const.DATA_BATTLE_HISTORY}"


class RepairInvariantError(Exception):
    """Raised when a computed repair still fails the issue taxonomy.

    This must not happen by construction; a patch that trips it is never
    written.

    Attributes:
        family_id: The family whose patch failed verification
        issues: Issue types still present after applying the patch
    """

    def __init__(self, family_id: str, issues: list[str]) -> None:
        """Initialize RepairInvariantError.

        Args:
            family_id: The family whose patch failed verification
            issues: Issue types still present after applying the patch
        """
        self.family_id = family_id
        self.issues = issues
        super().__init__(
            f"Repair for family '{family_id}' leaves issues: {', '.join(issues)}"
        )


def default_history() -> dict[str, Any]:
    """Return a fresh zeroed battle history."""
    return {
        const.DATA_HISTORY_TOTAL_BATTLES: 0,
        const.DATA_HISTORY_CHILDREN_WINS: 0,
        const.DATA_HISTORY_PARENT_WINS: 0,
        const.DATA_HISTORY_TIES: 0,
        const.DATA_HISTORY_CURRENT_STREAK: {
            const.DATA_HISTORY_STREAK_TEAM: None,
            const.DATA_HISTORY_STREAK_COUNT: 0,
        },
        const.DATA_HISTORY_RECENT_BATTLES: [],
        const.DATA_HISTORY_XP_AWARDED: {},
    }


def default_battle() -> dict[str, Any]:
    """Return a fresh disabled battle structure with a zeroed history."""
    return {
        const.DATA_BATTLE_ENABLED: False,
        const.DATA_BATTLE_CURRENT_WEEK: None,
        const.DATA_BATTLE_COMPLETED_WEEK: None,
        const.DATA_BATTLE_HISTORY: default_history(),
    }


class _ScriptDumper(yaml.SafeDumper):
    """Safe YAML dumper that writes shared objects out in full (no anchors)."""

    def ignore_aliases(self, data: Any) -> bool:
        return True


def _merge_patch(base: Patch, step: Patch) -> None:
    """Union `step` into `base`; re-set keys move to the end to keep order."""
    for path, value in step.items():
        base.pop(path, None)
        base[path] = value


class BattleRepairEngine:
    """Pure logic engine computing repairs for family battle records.

    All methods are static - no instance state.
    """

    # ────────────────────────────────────────────────────────────────
    # Per-Issue Builders
    # ────────────────────────────────────────────────────────────────

    @staticmethod
    def repair_malformed(
        issue: FamilyIssue, family: Mapping[str, Any], repaired_at: str
    ) -> Patch:
        """Replace unusable sub-structures and coerce bad counters."""
        patch: Patch = {}
        for path in issue.get(const.ATTR_PROBLEMS, []):
            if path == const.DATA_FAMILY_LEGACY_HISTORY:
                patch[path] = DELETE_FIELD
            elif path == _BATTLE:
                patch[path] = default_battle()
            elif path == _HISTORY_PATH:
                patch[path] = default_history()
            elif path == f"{_BATTLE}.{const.DATA_BATTLE_ENABLED}":
                battle = family.get(_BATTLE) or {}
                patch[path] = bool(battle.get(const.DATA_BATTLE_ENABLED))
            else:
                patch[path] = BattleScanEngine.coerce_counter(get_path(family, path))
        return patch

    @staticmethod
    def repair_dual_structure(
        issue: FamilyIssue, family: Mapping[str, Any], repaired_at: str
    ) -> Patch:
        """Merge legacy and current counters without double counting or loss."""
        legacy = issue[const.ATTR_LEGACY_COUNTERS]
        current = issue[const.ATTR_CURRENT_COUNTERS]
        history = dict(BattleScanEngine.classify_shape(family).history or {})

        merged = {
            field: max(legacy[field], current[field])
            for field in const.BATTLE_WIN_COUNTERS
        }
        calculated = sum(merged.values())
        largest_total = max(
            legacy[const.DATA_HISTORY_TOTAL_BATTLES],
            current[const.DATA_HISTORY_TOTAL_BATTLES],
        )
        unattributed = max(
            largest_total - calculated,
            history.get(const.DATA_HISTORY_UNATTRIBUTED_BATTLES) or 0,
        )

        merged_history = {
            **history,
            **merged,
            const.DATA_HISTORY_TOTAL_BATTLES: calculated,
            const.DATA_HISTORY_CURRENT_STREAK: history.get(
                const.DATA_HISTORY_CURRENT_STREAK
            )
            or default_history()[const.DATA_HISTORY_CURRENT_STREAK],
            const.DATA_HISTORY_RECENT_BATTLES: history.get(
                const.DATA_HISTORY_RECENT_BATTLES
            )
            or [],
            const.DATA_HISTORY_XP_AWARDED: history.get(const.DATA_HISTORY_XP_AWARDED)
            or {},
        }
        if unattributed > 0:
            merged_history[const.DATA_HISTORY_UNATTRIBUTED_BATTLES] = unattributed

        return {
            _HISTORY_PATH: merged_history,
            const.DATA_FAMILY_LEGACY_HISTORY: DELETE_FIELD,
        }

    @staticmethod
    def repair_inconsistent_state(
        issue: FamilyIssue, family: Mapping[str, Any], repaired_at: str
    ) -> Patch:
        """Enable a battle holding real data; otherwise clear its week pointers."""
        view = BattleScanEngine.classify_shape(family)
        battle = view.battle or {}
        if BattleScanEngine.has_battle_data(battle):
            patch: Patch = {f"{_BATTLE}.{const.DATA_BATTLE_ENABLED}": True}
            if view.history is None:
                patch[_HISTORY_PATH] = default_history()
            patch[f"{_BATTLE}.{const.DATA_BATTLE_REPAIRED_AT}"] = repaired_at
            patch[f"{_BATTLE}.{const.DATA_BATTLE_REPAIRED_REASON}"] = (
                const.REPAIRED_REASON_AUTO_ENABLED
            )
            return patch

        return {
            f"{_BATTLE}.{const.DATA_BATTLE_CURRENT_WEEK}": None,
            f"{_BATTLE}.{const.DATA_BATTLE_COMPLETED_WEEK}": None,
        }

    @staticmethod
    def repair_missing_history(
        issue: FamilyIssue, family: Mapping[str, Any], repaired_at: str
    ) -> Patch:
        """Install a zeroed history if none exists yet."""
        if BattleScanEngine.classify_shape(family).history is not None:
            return {}
        return {_HISTORY_PATH: default_history()}

    @staticmethod
    def repair_invalid_math(
        issue: FamilyIssue, family: Mapping[str, Any], repaired_at: str
    ) -> Patch:
        """Overwrite total_battles with the sum of the trusted components.

        Battles the old total counted beyond that sum are kept as
        unattributed_battles.
        """
        history = BattleScanEngine.classify_shape(family).history
        if history is None:
            return {}
        calculated = BattleScanEngine.win_sum(history)
        previous = BattleScanEngine.coerce_counter(
            history.get(const.DATA_HISTORY_TOTAL_BATTLES)
        )
        existing = BattleScanEngine.coerce_counter(
            history.get(const.DATA_HISTORY_UNATTRIBUTED_BATTLES)
        )
        patch: Patch = {
            f"{_HISTORY_PATH}.{const.DATA_HISTORY_TOTAL_BATTLES}": calculated
        }
        unattributed = max(previous - calculated, existing)
        if unattributed > existing:
            patch[f"{_HISTORY_PATH}.{const.DATA_HISTORY_UNATTRIBUTED_BATTLES}"] = (
                unattributed
            )
        return patch

    @staticmethod
    def repair_orphaned_data(
        issue: FamilyIssue, family: Mapping[str, Any], repaired_at: str
    ) -> Patch:
        """Synthesize a disabled current structure from the legacy history."""
        legacy = issue[const.ATTR_LEGACY_COUNTERS]
        history = default_history()
        for field in const.BATTLE_WIN_COUNTERS:
            history[field] = legacy[field]
        calculated = BattleScanEngine.win_sum(history)
        history[const.DATA_HISTORY_TOTAL_BATTLES] = calculated
        unattributed = legacy[const.DATA_HISTORY_TOTAL_BATTLES] - calculated
        if unattributed > 0:
            history[const.DATA_HISTORY_UNATTRIBUTED_BATTLES] = unattributed

        battle = default_battle()
        battle[const.DATA_BATTLE_HISTORY] = history
        return {
            _BATTLE: battle,
            const.DATA_FAMILY_LEGACY_HISTORY: DELETE_FIELD,
        }

    BUILDERS: dict[str, Callable[[Any, Mapping[str, Any], str], Patch]] = {}

    # ────────────────────────────────────────────────────────────────
    # Planning & Verification
    # ────────────────────────────────────────────────────────────────

    @staticmethod
    def build_patch(
        family_id: str,
        family: Mapping[str, Any],
        repaired_at: str,
        repaired_by: str = const.REPAIRED_BY_HEALTH_TOOL,
    ) -> Patch:
        """Compute the single merged patch that heals `family`.

        Returns an empty patch when the family is already healthy.

        Raises:
            RepairInvariantError: The merged patch does not yield a healthy record.
        """
        patch: Patch = {}
        working: dict[str, Any] = dict(family)
        needs_repair = False

        for _ in range(MAX_REPAIR_PASSES):
            issues = BattleScanEngine.find_issues(working)
            if not issues:
                break
            needs_repair = True
            ordered = sorted(
                issues, key=lambda issue: ISSUE_ORDER.index(issue[const.ATTR_ISSUE_TYPE])
            )
            for issue in ordered:
                builder = BattleRepairEngine.BUILDERS[issue[const.ATTR_ISSUE_TYPE]]
                step = builder(issue, working, repaired_at)
                if not step:
                    continue
                _merge_patch(patch, step)
                working = apply_patch(dict(family), patch)

        if not needs_repair:
            return patch

        BattleRepairEngine.verify_patched(family_id, working)
        _merge_patch(
            patch,
            {
                const.DATA_FAMILY_LAST_REPAIRED: repaired_at,
                const.DATA_FAMILY_REPAIRED_BY: repaired_by,
            },
        )
        return patch

    @staticmethod
    def verify_patched(family_id: str, patched_family: Mapping[str, Any]) -> None:
        """Re-scan a patched record; raise if any taxonomy issue remains."""
        remaining = BattleScanEngine.find_issues(patched_family)
        if remaining:
            issue_types = [issue[const.ATTR_ISSUE_TYPE] for issue in remaining]
            const.LOGGER.error(
                "ERROR: Repair invariant violated for family '%s': %s",
                family_id,
                issue_types,
            )
            raise RepairInvariantError(family_id, issue_types)

    @staticmethod
    def plan_repair(
        report: FamilyIssueReport,
        family: Mapping[str, Any],
        repaired_at: str,
        repaired_by: str = const.REPAIRED_BY_HEALTH_TOOL,
    ) -> RepairPlan:
        """Pair a scan report with the patch that heals its family."""
        return {
            "report": report,
            "patch": BattleRepairEngine.build_patch(
                report[const.ATTR_FAMILY_ID], family, repaired_at, repaired_by
            ),
        }

    # ────────────────────────────────────────────────────────────────
    # Dry-Run Script
    # ────────────────────────────────────────────────────────────────

    @staticmethod
    def render_script(plans: Iterable[RepairPlan], generated_at: str) -> str:
        """Render repair plans as a reviewable YAML script without applying them.

        Each family entry lists its issues and the exact `set` / `delete`
        operations the repair would write.
        """
        operations: list[dict[str, Any]] = []
        for plan in plans:
            report = plan["report"]
            sets, deletes = split_patch(plan["patch"])
            operations.append(
                {
                    "family_id": report[const.ATTR_FAMILY_ID],
                    "family_name": report[const.ATTR_FAMILY_NAME],
                    "issues": [
                        issue[const.ATTR_ISSUE_TYPE] for issue in report[const.ATTR_ISSUES]
                    ],
                    "set": sets,
                    "delete": deletes,
                }
            )

        header = (
            f"# Family battle repair script - generated {generated_at}\n"
            f"# Repairs {len(operations)} families with battle issues\n"
            "# Apply each entry as one atomic field-level update of "
            f"'{const.DATA_FAMILIES}/<family_id>'.\n"
        )
        if not operations:
            return header + "families: []\n"

        body = yaml.dump(
            {"families": operations},
            Dumper=_ScriptDumper,
            sort_keys=False,
            default_flow_style=False,
            allow_unicode=True,
        )
        return header + body

    # ────────────────────────────────────────────────────────────────
    # Student Link Repair
    # ────────────────────────────────────────────────────────────────

    @staticmethod
    def build_student_link_patch(drift: StudentLinkDrift, repaired_at: str) -> Patch:
        """Align a student's battle settings with its family record."""
        settings = const.DATA_STUDENT_FAMILY_BATTLE_SETTINGS
        patch: Patch = {
            f"{settings}.{const.DATA_BATTLE_ENABLED}": drift[const.ATTR_FAMILY_ENABLED],
            f"{settings}.{const.DATA_STUDENT_FAMILY_ID}": drift[const.ATTR_FAMILY_ID],
            f"{settings}.{const.DATA_BATTLE_REPAIRED_AT}": repaired_at,
        }
        return patch


BattleRepairEngine.BUILDERS = {
    const.ISSUE_MALFORMED_RECORD: BattleRepairEngine.repair_malformed,
    const.ISSUE_DUAL_STRUCTURE: BattleRepairEngine.repair_dual_structure,
    const.ISSUE_INCONSISTENT_STATE: BattleRepairEngine.repair_inconsistent_state,
    const.ISSUE_MISSING_HISTORY: BattleRepairEngine.repair_missing_history,
    const.ISSUE_INVALID_MATH: BattleRepairEngine.repair_invalid_math,
    const.ISSUE_ORPHANED_DATA: BattleRepairEngine.repair_orphaned_data,
}
