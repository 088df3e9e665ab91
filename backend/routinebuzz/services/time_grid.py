"""
Time Grid - the fixed weekly slot table every routine is laid out on.

Classes occupy exactly the slot at their start time. Labs occupy their start
slot plus the one after it, whatever end time the catalog reports.
"""
import re
from typing import Iterable, List, Optional, Sequence

from routinebuzz.models.routine_types import Section, Weekday

# Slot start times, identical for every day of the week
TIME_SLOTS = ("08:00", "09:30", "11:00", "12:30", "14:00", "15:30", "17:00")

_TIME_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})")


def normalize_time(raw: str) -> str:
    """
    Normalize a time-of-day string to 'HH:MM', dropping seconds.

    '09:30:00' -> '09:30', '9:30' -> '09:30'. Strings that don't look like a
    time are returned with only the first five characters kept.
    """
    match = _TIME_RE.match(raw or "")
    if not match:
        return (raw or "")[:5]
    return f"{int(match.group(1)):02d}:{match.group(2)}"


class TimeGrid:
    """An ordered table of slot start times."""

    def __init__(self, slots: Sequence[str] = TIME_SLOTS):
        normalized = tuple(normalize_time(s) for s in slots)
        if any(a >= b for a, b in zip(normalized, normalized[1:])):
            raise ValueError("time slots must be strictly increasing")
        self.slots = normalized

    def __len__(self) -> int:
        return len(self.slots)

    def slot_index_of(self, time: str) -> Optional[int]:
        """Index of the slot starting exactly at `time`, or None for irregular times."""
        try:
            return self.slots.index(normalize_time(time))
        except ValueError:
            return None

    def lab_slot_span(self, start_time: str) -> List[str]:
        """
        Slots a lab starting at `start_time` occupies.

        Returns [slot, next slot] for a known start, [slot] when it is the last
        slot of the day, and the literal normalized start time when it is off
        the grid.
        """
        index = self.slot_index_of(start_time)
        if index is None:
            return [normalize_time(start_time)]
        return list(self.slots[index:index + 2])

    def sections_in_slot(self, sections: Iterable[Section], day: Weekday, time: str) -> List[Section]:
        """Sections with a class starting in this cell or a lab covering it."""
        time = normalize_time(time)
        current = self.slot_index_of(time)
        found = []
        for section in sections:
            has_class = any(
                m.day == day and normalize_time(m.start_time) == time
                for m in section.class_schedules
            )
            has_lab = False
            for lab in section.lab_schedules:
                if lab.day != day:
                    continue
                lab_start = normalize_time(lab.start_time)
                lab_index = self.slot_index_of(lab_start)
                if lab_start == time or (
                    lab_index is not None and current is not None and current == lab_index + 1
                ):
                    has_lab = True
                    break
            if has_class or has_lab:
                found.append(section)
        return found

    def is_lab_continuation(self, sections: Iterable[Section], day: Weekday, time: str) -> bool:
        """True when a lab that started in the previous slot spills into this one."""
        index = self.slot_index_of(time)
        if index is None or index == 0:
            return False
        previous = self.slots[index - 1]
        return any(
            lab.day == day and normalize_time(lab.start_time) == previous
            for section in sections
            for lab in section.lab_schedules
        )


DEFAULT_GRID = TimeGrid()


def slot_index_of(time: str, grid: TimeGrid = DEFAULT_GRID) -> Optional[int]:
    return grid.slot_index_of(time)


def lab_slot_span(start_time: str, grid: TimeGrid = DEFAULT_GRID) -> List[str]:
    return grid.lab_slot_span(start_time)
