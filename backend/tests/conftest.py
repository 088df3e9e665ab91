"""
Shared fixtures for the routine builder tests.
"""
from typing import List, Optional, Tuple

import pytest

from routinebuzz.models.routine_types import Meeting, Section, Weekday
from routinebuzz.services import catalog_service


def _meetings(raw: Optional[List[Tuple[str, str, str]]]) -> List[Meeting]:
    return [Meeting(day=Weekday.parse(day), start_time=start, end_time=end) for day, start, end in (raw or [])]


def build_section(
    section_id: int,
    course_code: str = "CSE110",
    classes: Optional[List[Tuple[str, str, str]]] = None,
    labs: Optional[List[Tuple[str, str, str]]] = None,
    credit: float = 3.0,
    capacity: int = 30,
    consumed: int = 10,
    faculties: str = "ABC",
) -> Section:
    return Section(
        section_id=section_id,
        course_code=course_code,
        section_name=str(section_id % 100),
        course_credit=credit,
        capacity=capacity,
        consumed_seat=consumed,
        class_schedules=_meetings(classes),
        lab_schedules=_meetings(labs),
        course_name=f"{course_code} Course",
        faculties=faculties,
    )


@pytest.fixture
def make_section():
    """Factory for Sections: make_section(1, classes=[("MONDAY", "09:30:00", "10:50:00")])."""
    return build_section


@pytest.fixture(autouse=True)
def reset_catalog_cache():
    """Keep the module-level catalog cache from leaking between tests."""
    catalog_service.clear_cache()
    yield
    catalog_service.clear_cache()
