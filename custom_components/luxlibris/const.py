# File: const.py
"""Constants for the Lux Libris integration.

This file centralizes configuration keys, defaults, storage keys, service names,
signal suffixes, and platform identifiers for consistency across the integration.
"""

import logging

import homeassistant.util.dt as dt_util
from homeassistant.const import Platform

from .utils import dt_utils


def set_default_timezone(hass):
    """Set the default timezone based on the Home Assistant configuration."""
    global DEFAULT_TIME_ZONE
    DEFAULT_TIME_ZONE = dt_util.get_time_zone(hass.config.time_zone)
    if DEFAULT_TIME_ZONE is not None:
        dt_utils.set_default_timezone(DEFAULT_TIME_ZONE)


# ------------------------------------------------------------------------------------------------
# General / Integration Information
# ------------------------------------------------------------------------------------------------
# Integration Name
LUXLIBRIS_TITLE = "Lux Libris"

# Integration Domain
DOMAIN = "luxlibris"

# Logger
LOGGER = logging.getLogger(__package__)

# Supported Platforms
PLATFORMS = [
    Platform.SENSOR,
]

# Coordinator
COORDINATOR = "coordinator"
COORDINATOR_SUFFIX = "_coordinator"

# Storage and Versioning
STORE = "store"
STORAGE_KEY = "luxlibris_data"
STORAGE_VERSION = 1
SCHEMA_VERSION_CURRENT = 1

# Default timezone: initially None, to be set once hass is available.
DEFAULT_TIME_ZONE = None

# ------------------------------------------------------------------------------------------------
# Configuration Keys (options)
# ------------------------------------------------------------------------------------------------
CONF_SESSION_COMPLETION_MINUTES = "session_completion_minutes"
CONF_BULK_CONCURRENCY = "bulk_concurrency"
CONF_AUTO_PHASE_TRANSITIONS = "auto_phase_transitions"
CONF_UPDATE_INTERVAL = "update_interval"

# ------------------------------------------------------------------------------------------------
# Defaults
# ------------------------------------------------------------------------------------------------
DEFAULT_SESSION_COMPLETION_MINUTES = 20
DEFAULT_BULK_CONCURRENCY = 8
DEFAULT_AUTO_PHASE_TRANSITIONS = True
DEFAULT_UPDATE_INTERVAL = 5
DEFAULT_DAILY_RESET_TIME = {"hour": 0, "minute": 0, "second": 0}
DEFAULT_FAMILY_NAME = "Unknown Family"
DEFAULT_ZERO = 0

MIN_SESSION_COMPLETION_MINUTES = 1
MAX_SESSION_COMPLETION_MINUTES = 240
MIN_BULK_CONCURRENCY = 1
MAX_BULK_CONCURRENCY = 64

DEFAULT_OPTIONS = {
    CONF_SESSION_COMPLETION_MINUTES: DEFAULT_SESSION_COMPLETION_MINUTES,
    CONF_BULK_CONCURRENCY: DEFAULT_BULK_CONCURRENCY,
    CONF_AUTO_PHASE_TRANSITIONS: DEFAULT_AUTO_PHASE_TRANSITIONS,
    CONF_UPDATE_INTERVAL: DEFAULT_UPDATE_INTERVAL,
}

# Runaway guard for the backward streak walk
STREAK_MAX_ITERATIONS = 1000

# ------------------------------------------------------------------------------------------------
# Storage Sections
# ------------------------------------------------------------------------------------------------
DATA_META = "meta"
DATA_META_SCHEMA_VERSION = "schema_version"
DATA_META_LAST_MIDNIGHT_PROCESSED = "last_midnight_processed"

DATA_PROGRAM_CONFIG = "program_config"
DATA_ENTITIES = "entities"
DATA_FAMILIES = "families"

# Program config
DATA_CONFIG_PROGRAM_PHASE = "program_phase"
DATA_CONFIG_ACADEMIC_YEAR = "current_academic_year"
DATA_CONFIG_LAST_MODIFIED = "last_modified"
DATA_CONFIG_PHASE_HISTORY = "phase_history"
DATA_CONFIG_ROLLOVER_PENDING = "rollover_pending"
DATA_CONFIG_LAST_ROLLOVER = "last_rollover"

DATA_PHASE_HISTORY_FROM = "from_phase"
DATA_PHASE_HISTORY_TO = "to_phase"
DATA_PHASE_HISTORY_YEAR = "academic_year"
DATA_PHASE_HISTORY_CHANGED_AT = "changed_at"
DATA_PHASE_HISTORY_REASON = "reason"
PHASE_HISTORY_MAX_ENTRIES = 50

# Tenancy (entity -> school -> teacher/student)
DATA_NAME = "name"
DATA_ENTITY_SCHOOLS = "schools"
DATA_SCHOOL_STUDENTS = "students"
DATA_SCHOOL_TEACHERS = "teachers"

# Teacher fields
DATA_TEACHER_SELECTED_NOMINEES = "selected_nominees"
DATA_TEACHER_RELEASED_TO_STUDENTS = "released_to_students"
DATA_TEACHER_SELECTION_CAP = "selection_cap"
DATA_TEACHER_PREVIOUS_SELECTION_COUNT = "previous_selection_count"
DATA_TEACHER_LAST_RESET_YEAR = "last_reset_year"

# Student fields
DATA_STUDENT_FAMILY_ID = "family_id"
DATA_STUDENT_READING_SESSIONS = "reading_sessions"
DATA_STUDENT_FAMILY_BATTLE_SETTINGS = "family_battle_settings"
DATA_STUDENT_LAST_CLEARED_YEAR = "last_cleared_year"

# Student derived streak fields
DATA_STUDENT_CURRENT_STREAK = "current_streak"
DATA_STUDENT_LONGEST_STREAK = "longest_streak"
DATA_STUDENT_LAST_READING_DATE = "last_reading_date"
DATA_STUDENT_TOTAL_READING_DAYS = "total_reading_days"
DATA_STUDENT_TOTAL_DAYS_READ = "total_days_read"
DATA_STUDENT_STREAKS_RECALCULATED_AT = "streaks_recalculated_at"

STUDENT_STREAK_FIELDS = (
    DATA_STUDENT_CURRENT_STREAK,
    DATA_STUDENT_LONGEST_STREAK,
    DATA_STUDENT_LAST_READING_DATE,
    DATA_STUDENT_TOTAL_READING_DAYS,
    DATA_STUDENT_TOTAL_DAYS_READ,
)

# Student per-year fields (reset by the academic year rollover)
DATA_STUDENT_BOOKS_SUBMITTED_THIS_YEAR = "books_submitted_this_year"
DATA_STUDENT_BOOKSHELF = "bookshelf"
DATA_STUDENT_VOTES = "votes"
DATA_STUDENT_HAS_VOTED = "has_voted"
DATA_STUDENT_VOTED_FOR = "voted_for"
DATA_STUDENT_CURRENT_YEAR_GOAL = "current_year_goal"
DATA_STUDENT_ACHIEVEMENTS = "achievements"

# Student cross-year fields (preserved by the rollover)
DATA_STUDENT_LIFETIME_BOOKS_SUBMITTED = "lifetime_books_submitted"
DATA_STUDENT_LIFETIME_XP = "lifetime_xp"
DATA_STUDENT_TOTAL_XP = "total_xp"
DATA_STUDENT_UNLOCKED_SAINTS = "unlocked_saints"
DATA_STUDENT_EARNED_BADGES = "earned_badges"

# Session fields
DATA_SESSION_DATE = "date"
DATA_SESSION_DURATION = "duration"
DATA_SESSION_COMPLETED = "completed"
DATA_SESSION_BOOK_ID = "book_id"
DATA_SESSION_START_TIME = "start_time"
DATA_SESSION_TARGET_DURATION = "target_duration"

# Family fields
DATA_FAMILY_NAME = "family_name"
DATA_FAMILY_LINKED_STUDENTS = "linked_students"
DATA_FAMILY_LINKED_PARENTS = "linked_parents"
DATA_FAMILY_BATTLE = "family_battle"
DATA_FAMILY_LEGACY_HISTORY = "family_battle_history"
DATA_FAMILY_LAST_REPAIRED = "last_repaired"
DATA_FAMILY_REPAIRED_BY = "repaired_by"

# Current family battle structure
DATA_BATTLE_ENABLED = "enabled"
DATA_BATTLE_CURRENT_WEEK = "current_week"
DATA_BATTLE_COMPLETED_WEEK = "completed_week"
DATA_BATTLE_CHILDREN = "children"
DATA_BATTLE_PARENTS = "parents"
DATA_BATTLE_TOTAL = "total"
DATA_BATTLE_HISTORY = "history"
DATA_BATTLE_REPAIRED_AT = "repaired_at"
DATA_BATTLE_REPAIRED_REASON = "repaired_reason"

# Battle history
DATA_HISTORY_TOTAL_BATTLES = "total_battles"
DATA_HISTORY_CHILDREN_WINS = "children_wins"
DATA_HISTORY_PARENT_WINS = "parent_wins"
DATA_HISTORY_TIES = "ties"
DATA_HISTORY_CURRENT_STREAK = "current_streak"
DATA_HISTORY_STREAK_TEAM = "team"
DATA_HISTORY_STREAK_COUNT = "count"
DATA_HISTORY_RECENT_BATTLES = "recent_battles"
DATA_HISTORY_XP_AWARDED = "xp_awarded"
DATA_HISTORY_UNATTRIBUTED_BATTLES = "unattributed_battles"

# Legacy battle history
DATA_LEGACY_BATTLES = "battles"

# Win/tie counters shared by current and legacy history
BATTLE_WIN_COUNTERS = (
    DATA_HISTORY_CHILDREN_WINS,
    DATA_HISTORY_PARENT_WINS,
    DATA_HISTORY_TIES,
)

REPAIRED_BY_HEALTH_TOOL = "family-battle-health-tool"
REPAIRED_BY_SCRIPT = "repair-script"
REPAIRED_REASON_AUTO_ENABLED = "Auto-enabled due to existing battle data"

# ------------------------------------------------------------------------------------------------
# Issue Taxonomy
# ------------------------------------------------------------------------------------------------
ISSUE_DUAL_STRUCTURE = "dual_structure"
ISSUE_INCONSISTENT_STATE = "inconsistent_state"
ISSUE_MISSING_HISTORY = "missing_history"
ISSUE_INVALID_MATH = "invalid_math"
ISSUE_ORPHANED_DATA = "orphaned_data"
ISSUE_MALFORMED_RECORD = "malformed_record"

SEVERITY_HIGH = "high"
SEVERITY_MEDIUM = "medium"
SEVERITY_LOW = "low"

# Issue report fields
ATTR_FAMILY_ID = "family_id"
ATTR_FAMILY_NAME = "family_name"
ATTR_ISSUES = "issues"
ATTR_ISSUE_TYPE = "type"
ATTR_SEVERITY = "severity"
ATTR_DESCRIPTION = "description"
ATTR_LEGACY_COUNTERS = "legacy_counters"
ATTR_CURRENT_COUNTERS = "current_counters"
ATTR_HAS_CURRENT_WEEK = "has_current_week"
ATTR_HAS_COMPLETED_WEEK = "has_completed_week"
ATTR_HAS_BATTLE_DATA = "has_battle_data"
ATTR_TOTAL_BATTLES = "total_battles"
ATTR_CALCULATED_TOTAL = "calculated_total"
ATTR_BREAKDOWN = "breakdown"
ATTR_PROBLEMS = "problems"
ATTR_LINKED_STUDENTS = "linked_students"
ATTR_LINKED_PARENTS = "linked_parents"

# Student link drift fields
ATTR_STUDENT_ID = "student_id"
ATTR_SCHOOL_ID = "school_id"
ATTR_ENTITY_ID = "entity_id"
ATTR_FAMILY_ENABLED = "family_enabled"
ATTR_STUDENT_ENABLED = "student_enabled"
ATTR_STUDENT_FAMILY_ID = "student_settings_family_id"

# ------------------------------------------------------------------------------------------------
# Program Phases
# ------------------------------------------------------------------------------------------------
PHASE_SETUP = "SETUP"
PHASE_TEACHER_SELECTION = "TEACHER_SELECTION"
PHASE_ACTIVE = "ACTIVE"
PHASE_VOTING = "VOTING"
PHASE_RESULTS = "RESULTS"
PHASE_CLOSED = "CLOSED"

# Calendar anchors (month, day) relative to the academic year
ACADEMIC_YEAR_START = (6, 1)
SCHEDULE_ACTIVE_START = (6, 1)
SCHEDULE_VOTING_START = (3, 31)
SCHEDULE_RESULTS_START = (4, 15)

# ------------------------------------------------------------------------------------------------
# Signals (suffixes for instance-scoped dispatcher signals)
# ------------------------------------------------------------------------------------------------
SIGNAL_SUFFIX_MIDNIGHT_ROLLOVER = "midnight_rollover"
SIGNAL_SUFFIX_DATA_READY = "data_ready"
SIGNAL_SUFFIX_PHASE_CHANGED = "phase_changed"
SIGNAL_SUFFIX_FAMILIES_REPAIRED = "families_repaired"
SIGNAL_SUFFIX_STREAKS_UPDATED = "streaks_updated"

# ------------------------------------------------------------------------------------------------
# Services
# ------------------------------------------------------------------------------------------------
SERVICE_SCAN_FAMILY_ISSUES = "scan_family_issues"
SERVICE_REPAIR_FAMILIES = "repair_families"
SERVICE_GENERATE_REPAIR_SCRIPT = "generate_repair_script"
SERVICE_SCAN_STUDENT_LINKS = "scan_student_links"
SERVICE_REPAIR_STUDENT_LINKS = "repair_student_links"
SERVICE_RECOMPUTE_STREAK = "recompute_streak"
SERVICE_MIGRATE_ALL_STUDENTS = "migrate_all_students"
SERVICE_GET_PHASE = "get_phase"
SERVICE_TRANSITION_PHASE = "transition_phase"
SERVICE_CLOSE_PROGRAM = "close_program"
SERVICE_ROLLOVER_ACADEMIC_YEAR = "rollover_academic_year"
SERVICE_CHECK_SCHEDULED_PHASE = "check_scheduled_phase"

# Service fields
FIELD_FAMILY_IDS = "family_ids"
FIELD_STUDENT_ID = "student_id"
FIELD_TARGET_PHASE = "target_phase"
FIELD_REASON = "reason"

# ------------------------------------------------------------------------------------------------
# Sensors
# ------------------------------------------------------------------------------------------------
SENSOR_KEY_PROGRAM_PHASE = "program_phase"
SENSOR_KEY_FAMILY_HEALTH = "family_battle_health"

ATTR_ACADEMIC_YEAR = "academic_year"
ATTR_NEXT_PHASE = "next_phase"
ATTR_ROLLOVER_PENDING = "rollover_pending"
ATTR_FAMILIES_WITH_ISSUES = "families_with_issues"
ATTR_ISSUE_COUNTS = "issue_counts"

HEALTH_STATE_HEALTHY = "healthy"
HEALTH_STATE_ISSUES_FOUND = "issues_found"

# ------------------------------------------------------------------------------------------------
# Config Flow
# ------------------------------------------------------------------------------------------------
CONFIG_FLOW_STEP_USER = "user"
CONFIG_FLOW_ABORT_SINGLE_INSTANCE = "single_instance_allowed"
OPTIONS_FLOW_STEP_INIT = "init"

# ------------------------------------------------------------------------------------------------
# Messages
# ------------------------------------------------------------------------------------------------
MSG_NO_ENTRY_FOUND = "No Lux Libris entry found"
ERROR_STUDENT_NOT_FOUND_FMT = "Student '{}' not found"
ERROR_FAMILY_NOT_FOUND_FMT = "Family '{}' not found"
ERROR_INVALID_TRANSITION_FMT = "Phase transition {} -> {} is not allowed"
