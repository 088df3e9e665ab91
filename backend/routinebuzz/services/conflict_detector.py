"""
Conflict Detector - finds every pairwise time collision in a set of sections.

Works on the fixed slot grid rather than on time ranges:
- class vs class: same day and the same literal start time
- class vs lab: the class starts in one of the lab's two slots
- lab vs lab: the two labs share a slot
"""
import logging
from typing import Iterable, List, Sequence, Set

from routinebuzz.models.routine_types import (
    ConflictMarker,
    MeetingKind,
    ScheduleValidation,
    Section,
)
from routinebuzz.services.time_grid import DEFAULT_GRID, TimeGrid, normalize_time

logger = logging.getLogger(__name__)


def _class_vs_lab(
    class_section: Section,
    lab_section: Section,
    grid: TimeGrid,
    markers: Set[ConflictMarker],
) -> None:
    for meeting in class_section.class_schedules:
        class_start = normalize_time(meeting.start_time)
        for lab in lab_section.lab_schedules:
            if lab.day != meeting.day:
                continue
            for lab_slot in grid.lab_slot_span(lab.start_time):
                if class_start == lab_slot:
                    markers.add(ConflictMarker(class_section.section_id, MeetingKind.CLASS, meeting.day, class_start))
                    markers.add(ConflictMarker(lab_section.section_id, MeetingKind.LAB, lab.day, lab_slot))


def _pair_conflicts(first: Section, second: Section, grid: TimeGrid, markers: Set[ConflictMarker]) -> None:
    # Class vs class compares the raw start strings, so '09:30:00' and
    # '09:30:30' do not collide.
    for meeting1 in first.class_schedules:
        for meeting2 in second.class_schedules:
            if meeting1.day == meeting2.day and meeting1.start_time == meeting2.start_time:
                markers.add(ConflictMarker(first.section_id, MeetingKind.CLASS, meeting1.day, normalize_time(meeting1.start_time)))
                markers.add(ConflictMarker(second.section_id, MeetingKind.CLASS, meeting2.day, normalize_time(meeting2.start_time)))

    _class_vs_lab(first, second, grid, markers)
    _class_vs_lab(second, first, grid, markers)

    for lab1 in first.lab_schedules:
        span1 = grid.lab_slot_span(lab1.start_time)
        for lab2 in second.lab_schedules:
            if lab1.day != lab2.day:
                continue
            for slot in grid.lab_slot_span(lab2.start_time):
                if slot in span1:
                    markers.add(ConflictMarker(first.section_id, MeetingKind.LAB, lab1.day, slot))
                    markers.add(ConflictMarker(second.section_id, MeetingKind.LAB, lab2.day, slot))


def detect_conflicts(sections: Sequence[Section], grid: TimeGrid = DEFAULT_GRID) -> Set[ConflictMarker]:
    """
    Compute the conflict markers for a set of selected sections.

    Pure function of its input: the same sections always yield the same set.
    """
    markers: Set[ConflictMarker] = set()
    sections = list(sections)
    for i, first in enumerate(sections):
        for second in sections[i + 1:]:
            if first.section_id == second.section_id:
                continue
            _pair_conflicts(first, second, grid, markers)
    return markers


def conflicting_section_ids(markers: Iterable[ConflictMarker]) -> Set[int]:
    return {m.section_id for m in markers}


def has_conflict(sections: Sequence[Section], candidate: Section, grid: TimeGrid = DEFAULT_GRID) -> bool:
    """Whether `candidate` collides with any of `sections` (the candidate itself is ignored)."""
    markers: Set[ConflictMarker] = set()
    for existing in sections:
        if existing.section_id == candidate.section_id:
            continue
        _pair_conflicts(candidate, existing, grid, markers)
        if any(m.section_id == candidate.section_id for m in markers):
            return True
    return False


def _off_grid_warnings(sections: Sequence[Section], grid: TimeGrid) -> List[str]:
    warnings = []
    for section in sections:
        for kind, meetings in (("class", section.class_schedules), ("lab", section.lab_schedules)):
            for meeting in meetings:
                if grid.slot_index_of(meeting.start_time) is None:
                    warnings.append(
                        f"{section.course_code} section {section.section_name} has a {kind} on "
                        f"{meeting.day.value.title()} at {normalize_time(meeting.start_time)}, "
                        "which is outside the slot grid; conflicts may be missed."
                    )
    return warnings


def validate_routine(sections: Sequence[Section], grid: TimeGrid = DEFAULT_GRID) -> ScheduleValidation:
    """
    Validate a routine for conflicts and credit totals.

    Args:
        sections: Sections in the routine
        grid: Slot table to lay labs out on

    Returns:
        ScheduleValidation with sorted markers and off-grid warnings
    """
    markers = detect_conflicts(sections, grid)
    total_credits = sum(s.course_credit for s in sections)
    if markers:
        logger.debug(f"Routine of {len(sections)} sections has {len(markers)} conflict markers")

    return ScheduleValidation(
        valid=not markers,
        conflicts=sorted(markers),
        conflicting_section_ids=sorted(conflicting_section_ids(markers)),
        total_credits=total_credits,
        warnings=_off_grid_warnings(sections, grid),
    )
