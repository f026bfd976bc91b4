# File: store.py
"""Handles persistent data storage for the Lux Libris integration.

Uses Home Assistant's Storage helper to save and load program data, ensuring
the state is preserved across restarts. This includes the program config,
the entity/school tenancy tree with its teachers and students, and the
family records.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from typing import TYPE_CHECKING, Any

from homeassistant.helpers.storage import Store

from . import const

if TYPE_CHECKING:
    from homeassistant.core import HomeAssistant

    from .type_defs import StudentRef


class StudentNotFoundError(Exception):
    """Raised when a student id is not present in any school."""

    def __init__(self, student_id: str) -> None:
        """Initialize StudentNotFoundError.

        Args:
            student_id: The student id that was looked up
        """
        self.student_id = student_id
        super().__init__(const.ERROR_STUDENT_NOT_FOUND_FMT.format(student_id))


class FamilyNotFoundError(Exception):
    """Raised when a family id is not present in the family collection."""

    def __init__(self, family_id: str) -> None:
        """Initialize FamilyNotFoundError.

        Args:
            family_id: The family id that was looked up
        """
        self.family_id = family_id
        super().__init__(const.ERROR_FAMILY_NOT_FOUND_FMT.format(family_id))


class LuxLibrisStore:
    """Handles persistent storage operations for Lux Libris data.

    Thin wrapper around Home Assistant's Store API for loading, saving, and
    walking the tenancy tree (entity -> school -> teacher/student).
    """

    def __init__(
        self, hass: HomeAssistant, storage_key: str = const.STORAGE_KEY
    ) -> None:
        """Initialize the store.

        Args:
            hass: Home Assistant core object.
            storage_key: Key to identify storage location (default: const.STORAGE_KEY).

        """
        self.hass = hass
        self._storage_key = storage_key
        self._store: Store = Store(hass, const.STORAGE_VERSION, storage_key)
        self._data: dict[str, Any] = {}  # In-memory data cache for quick access.

    @staticmethod
    def get_default_structure() -> dict[str, Any]:
        """Return canonical empty data structure for fresh installations.

        The program config is left empty here; SystemManager bootstraps it
        with the academic year of the first startup.
        """
        return {
            const.DATA_META: {
                const.DATA_META_SCHEMA_VERSION: const.SCHEMA_VERSION_CURRENT,
                const.DATA_META_LAST_MIDNIGHT_PROCESSED: None,
            },
            const.DATA_PROGRAM_CONFIG: {},
            const.DATA_ENTITIES: {},
            const.DATA_FAMILIES: {},
        }

    async def async_initialize(self) -> None:
        """Load data from storage during startup.

        If no data exists, initializes with an empty structure.
        """
        const.LOGGER.debug("DEBUG: LuxLibrisStore: Loading data from storage")
        existing_data = await self._store.async_load()

        if existing_data is None:
            const.LOGGER.info("INFO: No existing storage found. Initializing new data")
            self._data = LuxLibrisStore.get_default_structure()
        else:
            self._data = existing_data
            const.LOGGER.debug(
                "DEBUG: Loaded existing data from storage: %s",
                {
                    "entities": len(self._data.get(const.DATA_ENTITIES, {})),
                    "families": len(self._data.get(const.DATA_FAMILIES, {})),
                    "total_keys": len(self._data.keys()),
                },
            )

    @property
    def data(self) -> dict[str, Any]:
        """Retrieve the in-memory data cache."""
        return self._data

    def set_data(self, new_data: dict[str, Any]) -> None:
        """Replace the entire in-memory data structure."""
        self._data = new_data

    async def async_save(self) -> None:
        """Save the current data structure to storage asynchronously.

        Errors are logged but do not stop execution:
            OSError: File system issues prevent saving.
            TypeError: Data contains non-serializable types.
            ValueError: Data is invalid for JSON serialization.
        """
        try:
            await self._store.async_save(self._data)
            const.LOGGER.debug("DEBUG: Data saved successfully to storage")
        except OSError as err:
            const.LOGGER.error(
                "ERROR: Failed to save storage due to file system error: %s. "
                "Check disk space and file permissions for %s",
                err,
                self._store.path,
            )
        except TypeError as err:
            const.LOGGER.error(
                "ERROR: Failed to save storage due to non-serializable data: %s. "
                "Data contains types that cannot be converted to JSON",
                err,
            )
        except ValueError as err:
            const.LOGGER.error(
                "ERROR: Failed to save storage due to invalid data format: %s. "
                "Data structure may be corrupted",
                err,
            )

    async def async_clear_data(self) -> None:
        """Clear all stored data and reset to default structure."""
        const.LOGGER.warning("WARNING: Clearing all Lux Libris data and resetting storage")
        self._data = LuxLibrisStore.get_default_structure()
        await self.async_save()

    async def async_delete_storage(self) -> None:
        """Delete the storage file completely from disk."""
        await self.async_clear_data()

        try:
            await self._store.async_remove()
            const.LOGGER.info(
                "INFO: Storage file removed successfully: %s",
                self._store.path,
            )
        except OSError as err:
            const.LOGGER.error(
                "ERROR: Failed to remove storage file %s: %s. Check file permissions",
                self._store.path,
                err,
            )


# ==============================================================================
# Tenancy Tree Walkers
# ==============================================================================


def _section(
    container: Mapping[str, Any], key: str, owner: str
) -> Mapping[str, Any]:
    """Return a child collection, or an empty mapping when it is malformed."""
    section = container.get(key)
    if section is None:
        return {}
    if not isinstance(section, Mapping):
        const.LOGGER.warning(
            "WARNING: Skipping %s of %s: expected a mapping, got %s",
            key,
            owner,
            type(section).__name__,
        )
        return {}
    return section


def _schools(data: Mapping[str, Any]) -> Iterator[tuple[str, str, Mapping[str, Any]]]:
    """Yield (entity_id, school_id, school) for every school document."""
    for entity_id, entity in _section(data, const.DATA_ENTITIES, "root").items():
        if not isinstance(entity, Mapping):
            const.LOGGER.warning("WARNING: Skipping malformed entity %s", entity_id)
            continue
        schools = _section(entity, const.DATA_ENTITY_SCHOOLS, entity_id)
        for school_id, school in schools.items():
            if isinstance(school, Mapping):
                yield entity_id, school_id, school
            else:
                const.LOGGER.warning(
                    "WARNING: Skipping malformed school %s/%s", entity_id, school_id
                )


def iter_students(
    data: Mapping[str, Any],
) -> Iterator[tuple[StudentRef, Mapping[str, Any]]]:
    """Yield (StudentRef, student) for every student in every school."""
    for entity_id, school_id, school in _schools(data):
        students = _section(school, const.DATA_SCHOOL_STUDENTS, school_id)
        for student_id, student in students.items():
            if not isinstance(student, Mapping):
                const.LOGGER.warning(
                    "WARNING: Skipping malformed student %s in %s", student_id, school_id
                )
                continue
            ref: StudentRef = {
                "entity_id": entity_id,
                "school_id": school_id,
                "student_id": student_id,
            }
            yield ref, student


def iter_teachers(
    data: Mapping[str, Any],
) -> Iterator[tuple[StudentRef, Mapping[str, Any]]]:
    """Yield (ref, teacher) for every teacher; ref["student_id"] holds the teacher id."""
    for entity_id, school_id, school in _schools(data):
        teachers = _section(school, const.DATA_SCHOOL_TEACHERS, school_id)
        for teacher_id, teacher in teachers.items():
            if not isinstance(teacher, Mapping):
                continue
            ref: StudentRef = {
                "entity_id": entity_id,
                "school_id": school_id,
                "student_id": teacher_id,
            }
            yield ref, teacher


def find_student(
    data: Mapping[str, Any], student_id: str
) -> tuple[StudentRef, Mapping[str, Any]]:
    """Locate a student by id across all schools.

    Raises:
        StudentNotFoundError: No school holds a student with that id.
    """
    for ref, student in iter_students(data):
        if ref["student_id"] == student_id:
            return ref, student
    raise StudentNotFoundError(student_id)


def record_path(ref: StudentRef, collection: str) -> tuple[str, ...]:
    """Return the key path of a student or teacher record inside the data root."""
    return (
        const.DATA_ENTITIES,
        ref["entity_id"],
        const.DATA_ENTITY_SCHOOLS,
        ref["school_id"],
        collection,
        ref["student_id"],
    )


def get_record(data: dict[str, Any], path: tuple[str, ...]) -> dict[str, Any]:
    """Return the record at a key path produced by record_path()."""
    node: Any = data
    for key in path:
        node = node[key]
    return node


def replace_record(
    data: dict[str, Any], path: tuple[str, ...], record: dict[str, Any]
) -> None:
    """Swap the record at a key path in one assignment."""
    parent = get_record(data, path[:-1])
    parent[path[-1]] = record


def record_key(ref: StudentRef) -> str:
    """Return a key for a record that is unique across entities and schools."""
    return "/".join((ref["entity_id"], ref["school_id"], ref["student_id"]))
