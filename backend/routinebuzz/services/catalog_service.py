"""
Catalog Service - fetches course sections from the USIS CDN feed.
Provides cached reads, revalidated on an interval, plus course-level lookups
and the section filters used by the schedule grid.
"""
import logging
import os
import threading
import time
from typing import Any, Dict, Iterable, List, Optional, Set

import requests
from requests.exceptions import RequestException

from routinebuzz.models.routine_types import CourseSummary, Section

logger = logging.getLogger(__name__)


def _get_env(key: str, default: str = "") -> str:
    """Get environment variable, stripping whitespace."""
    return (os.getenv(key) or default).strip()


USIS_CATALOG_URL = _get_env("USIS_CATALOG_URL", "https://usis-cdn.eniamza.com/connect.json")
CATALOG_REFRESH_SECONDS = float(_get_env("CATALOG_REFRESH_SECONDS", "60"))
CATALOG_TIMEOUT = int(_get_env("CATALOG_TIMEOUT", "30"))
USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/26.0 Safari/605.1.15"
)


class CatalogUnavailableError(Exception):
    """Raised when the catalog can't be fetched and no earlier copy is cached."""
    pass


_cache: Optional[List[Section]] = None
_cache_loaded_at = 0.0
_cache_lock = threading.Lock()


def _extract_rows(payload: Any) -> List[Dict[str, Any]]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in ("sections", "data"):
            rows = payload.get(key)
            if isinstance(rows, list):
                return rows
    return []


def parse_sections(rows: Iterable[Dict[str, Any]]) -> List[Section]:
    """Parse catalog rows, skipping malformed ones and duplicate section ids."""
    sections: Dict[int, Section] = {}
    skipped = 0
    for row in rows:
        try:
            section = Section.from_api(row)
        except (KeyError, TypeError, ValueError):
            skipped += 1
            continue
        sections.setdefault(section.section_id, section)
    if skipped:
        logger.debug(f"Skipped {skipped} unparseable catalog rows")
    return list(sections.values())


def _fetch_catalog() -> List[Section]:
    response = requests.get(
        USIS_CATALOG_URL,
        headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
        timeout=CATALOG_TIMEOUT,
    )
    response.raise_for_status()
    return parse_sections(_extract_rows(response.json()))


def load_all_sections(force: bool = False) -> List[Section]:
    """
    Return every section in the catalog.

    The copy is reused for CATALOG_REFRESH_SECONDS. When a refresh fails the
    previous copy is kept; with nothing cached, CatalogUnavailableError is raised.
    """
    global _cache, _cache_loaded_at

    with _cache_lock:
        fresh = _cache is not None and (time.monotonic() - _cache_loaded_at) < CATALOG_REFRESH_SECONDS
        if fresh and not force:
            return _cache

        try:
            sections = _fetch_catalog()
        except (RequestException, ValueError) as e:
            if _cache is not None:
                logger.warning(f"Catalog refresh failed, keeping previous data: {e}")
                return _cache
            logger.error(f"Catalog fetch failed: {e}")
            raise CatalogUnavailableError(f"Unable to load course catalog: {e}") from e

        _cache = sections
        _cache_loaded_at = time.monotonic()
        logger.info(f"Loaded {len(sections)} sections from {USIS_CATALOG_URL}")
        return _cache


def clear_cache() -> None:
    """Drop the cached catalog so the next read refetches."""
    global _cache, _cache_loaded_at
    with _cache_lock:
        _cache = None
        _cache_loaded_at = 0.0


def list_courses() -> List[CourseSummary]:
    """One entry per course code, in catalog order."""
    seen: Set[str] = set()
    courses = []
    for section in load_all_sections():
        if section.course_code in seen:
            continue
        seen.add(section.course_code)
        courses.append(CourseSummary(
            course_code=section.course_code,
            course_name=section.course_name,
            course_credit=section.course_credit,
            academic_degree=section.academic_degree,
        ))
    return courses


def list_sections(course_code: str) -> List[Section]:
    code = course_code.strip().upper()
    return [s for s in load_all_sections() if s.course_code.upper() == code]


def sections_by_ids(section_ids: Iterable[int]) -> List[Section]:
    """Sections for the given ids, in request order; unknown ids are skipped."""
    by_id = {s.section_id: s for s in load_all_sections()}
    return [by_id[i] for i in section_ids if i in by_id]


def get_section(section_id: int) -> Optional[Section]:
    for section in load_all_sections():
        if section.section_id == section_id:
            return section
    return None


def _split_faculties(raw: str) -> List[str]:
    return [f.strip() for f in (raw or "").split(",") if f.strip()]


def faculties_for_course(course_code: str) -> List[str]:
    """Sorted, de-duplicated faculty initials teaching any section of a course."""
    faculties: Set[str] = set()
    for section in list_sections(course_code):
        faculties.update(_split_faculties(section.faculties))
    return sorted(faculties)


def filter_sections(
    sections: Iterable[Section],
    min_seats: int = 0,
    include_faculties: Optional[Set[str]] = None,
    exclude_faculties: Optional[Set[str]] = None,
) -> List[Section]:
    """
    Filter sections by free seats and faculty.

    Args:
        sections: Sections to filter
        min_seats: Minimum available seats (0 disables the filter)
        include_faculties: Keep only sections taught by one of these
        exclude_faculties: Drop sections taught by any of these

    Returns:
        The matching sections, in input order
    """
    result = []
    for section in sections:
        if min_seats > 0 and section.available_seats < min_seats:
            continue
        faculties = set(_split_faculties(section.faculties))
        if include_faculties and not faculties & include_faculties:
            continue
        if exclude_faculties and faculties & exclude_faculties:
            continue
        result.append(section)
    return result
