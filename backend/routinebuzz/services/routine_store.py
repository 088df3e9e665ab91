"""
Routine Store - the user's selected sections plus their persisted copy.

The store is a container with change notification. It writes every mutation
through to a key-value storage; conflict recomputation and share syncing are
done by whoever listens.
"""
import json
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Set, Tuple

from routinebuzz.models.routine_types import (
    CalendarExportRequest,
    ConflictMarker,
    ExportOptions,
    Section,
    SharedRoutineLink,
)
from routinebuzz.services.conflict_detector import detect_conflicts

logger = logging.getLogger(__name__)

ROUTINE_STORAGE_KEY = "routinebuzz_routine_courses"
ROUTINE_MODE_KEY = "routinebuzz_routine_mode"
SELECTED_COURSE_KEY = "routinebuzz_selected_course"
SHARED_ROUTINE_KEY = "routinebuzz_shared_routine"
SESSION_ID_KEY = "routinebuzz_session_id"


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def remove(self, key: str) -> None:
        ...


class MemoryStorage:
    """Dict-backed storage."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStorage:
    """
    Storage kept in a single JSON object on disk.

    The file is re-read on every get so that changes made by another process
    are visible to reconcile_from_storage().
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Ignoring unreadable storage file {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            value = self._read().get(key)
        return value if isinstance(value, str) else None

    def set(self, key: str, value: str) -> None:
        with self._lock:
            data = self._read()
            data[key] = value
            self._write(data)

    def remove(self, key: str) -> None:
        with self._lock:
            data = self._read()
            if key in data:
                del data[key]
                self._write(data)


def load_json(storage: KeyValueStore, key: str, fallback: Any) -> Any:
    """Read and decode a JSON value, falling back on missing or corrupt data."""
    raw = storage.get(key)
    if raw is None:
        return fallback
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, TypeError) as e:
        logger.warning(f"Corrupt value under {key!r}, using default: {e}")
        return fallback


def routine_signature(section_ids: Iterable[int]) -> str:
    """Order-independent identity of a routine: sorted section ids joined by commas."""
    return ",".join(str(i) for i in sorted(section_ids))


@dataclass(frozen=True)
class RoutineChange:
    """What happened to the routine. Only 'add' and 'remove' are local edits."""
    kind: str
    section_ids: Tuple[int, ...]

    LOCAL_EDITS = ("add", "remove")

    @property
    def is_local_edit(self) -> bool:
        return self.kind in self.LOCAL_EDITS


Listener = Callable[[RoutineChange], None]


class RoutineStore:
    """The selected sections and the shared-routine link, persisted on every mutation."""

    def __init__(self, storage: KeyValueStore):
        self.storage = storage
        self._listeners: List[Listener] = []
        self._sections: List[Section] = self._load_sections()
        self._link: Optional[SharedRoutineLink] = self._load_link()

    # ------------------------------------------------------------------
    # Loading / persistence
    # ------------------------------------------------------------------

    def _load_sections(self) -> List[Section]:
        saved = load_json(self.storage, ROUTINE_STORAGE_KEY, None)
        if not isinstance(saved, list):
            return []
        sections: List[Section] = []
        seen: Set[int] = set()
        for item in saved:
            try:
                section = Section.from_api(item)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping unreadable saved section: {e}")
                continue
            if section.section_id not in seen:
                seen.add(section.section_id)
                sections.append(section)
        return sections

    def _load_link(self) -> Optional[SharedRoutineLink]:
        saved = load_json(self.storage, SHARED_ROUTINE_KEY, None)
        if not isinstance(saved, dict):
            return None
        try:
            return SharedRoutineLink.from_dict(saved)
        except ValueError as e:
            logger.warning(f"Ignoring saved shared routine link: {e}")
            return None

    def _persist_sections(self) -> None:
        try:
            self.storage.set(ROUTINE_STORAGE_KEY, json.dumps([s.to_dict() for s in self._sections]))
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to save routine: {e}")

    def _persist_link(self) -> None:
        if self._link is None:
            self.storage.remove(SHARED_ROUTINE_KEY)
        else:
            self.storage.set(SHARED_ROUTINE_KEY, json.dumps(self._link.to_dict()))

    # ------------------------------------------------------------------
    # Change notification
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener. Returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, kind: str) -> None:
        change = RoutineChange(kind=kind, section_ids=tuple(self.section_ids()))
        for listener in list(self._listeners):
            listener(change)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add(self, section: Section) -> bool:
        """Add a section. Returns False (and does nothing) if its id is already present."""
        if self.contains(section.section_id):
            return False
        self._sections.append(section)
        self._persist_sections()
        self._notify("add")
        return True

    def remove(self, section_id: int) -> None:
        """Remove a section by id. Removing an absent id is a no-op."""
        remaining = [s for s in self._sections if s.section_id != section_id]
        if len(remaining) == len(self._sections):
            return
        self._sections = remaining
        self._persist_sections()
        self._notify("remove")

    def clear(self) -> None:
        """Empty the routine and detach any shared link."""
        had_state = bool(self._sections) or self._link is not None
        self._sections = []
        self._link = None
        self._persist_sections()
        self._persist_link()
        if had_state:
            self._notify("clear")

    def replace(self, sections: Iterable[Section], kind: str = "replace") -> None:
        """Replace the whole routine with a snapshot (duplicates by id are dropped)."""
        unique: Dict[int, Section] = {}
        for section in sections:
            unique.setdefault(section.section_id, section)
        self._sections = list(unique.values())
        self._persist_sections()
        self._notify(kind)

    def refresh_seats(self, fresh_sections: Iterable[Section]) -> bool:
        """
        Swap in fresh catalog records for sections whose seat counts changed.

        Returns True if anything changed.
        """
        fresh_by_id = {s.section_id: s for s in fresh_sections}
        changed = False
        updated = []
        for section in self._sections:
            fresh = fresh_by_id.get(section.section_id)
            if fresh is not None and (
                fresh.consumed_seat != section.consumed_seat or fresh.capacity != section.capacity
            ):
                updated.append(fresh)
                changed = True
            else:
                updated.append(section)
        if changed:
            self._sections = updated
            self._persist_sections()
            self._notify("refresh")
        return changed

    def set_link(self, link: Optional[SharedRoutineLink]) -> None:
        self._link = link
        self._persist_link()

    def reconcile_from_storage(self) -> bool:
        """
        Re-read the persisted routine after an out-of-band change.

        Returns True if the in-memory routine or link changed.
        """
        sections = self._load_sections()
        link = self._load_link()
        sections_changed = [s.to_dict() for s in sections] != [s.to_dict() for s in self._sections]
        link_changed = link != self._link
        self._link = link
        if sections_changed:
            self._sections = sections
        if sections_changed or link_changed:
            self._notify("reconcile")
        return sections_changed or link_changed

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def sections(self) -> Tuple[Section, ...]:
        return tuple(self._sections)

    @property
    def link(self) -> Optional[SharedRoutineLink]:
        return self._link

    def contains(self, section_id: int) -> bool:
        return any(s.section_id == section_id for s in self._sections)

    def section_ids(self) -> List[int]:
        return [s.section_id for s in self._sections]

    def signature(self) -> str:
        return routine_signature(self.section_ids())

    def count(self) -> int:
        return len(self._sections)

    def total_credits(self) -> float:
        return sum(s.course_credit for s in self._sections)

    def conflicts(self) -> Set[ConflictMarker]:
        return detect_conflicts(self._sections)

    def export_request(self, options: Optional[ExportOptions] = None) -> CalendarExportRequest:
        return CalendarExportRequest(sections=list(self._sections), options=options or ExportOptions())

    # ------------------------------------------------------------------
    # UI preferences kept next to the routine
    # ------------------------------------------------------------------

    @property
    def routine_mode(self) -> bool:
        return self.storage.get(ROUTINE_MODE_KEY) == "true"

    @routine_mode.setter
    def routine_mode(self, value: bool) -> None:
        self.storage.set(ROUTINE_MODE_KEY, "true" if value else "false")

    @property
    def selected_course(self) -> str:
        return self.storage.get(SELECTED_COURSE_KEY) or ""

    @selected_course.setter
    def selected_course(self, course_code: str) -> None:
        self.storage.set(SELECTED_COURSE_KEY, course_code)
