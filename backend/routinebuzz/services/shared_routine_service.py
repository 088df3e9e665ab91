"""
Shared Routine Service - create, load and update published routines.
Routines live in the Supabase `shared_routines` table keyed by a short code.
"""
import logging
import random
import string
import urllib.parse
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from routinebuzz.models.routine_types import SharedRoutine
from routinebuzz.services import catalog_service
from routinebuzz.services.supabase_client import supabase_request

logger = logging.getLogger(__name__)

TABLE_PATH = "/rest/v1/shared_routines"
SHORT_CODE_LENGTH = 8
SHORT_CODE_ALPHABET = string.ascii_letters + string.digits
MAX_CODE_ATTEMPTS = 5


class SharedRoutineError(Exception):
    """Base exception for shared routine operations."""
    pass


class RoutineNotFoundError(SharedRoutineError):
    """Raised when a short code doesn't match any routine."""
    pass


class UnauthorizedUpdateError(SharedRoutineError):
    """Raised when someone other than the creator tries to update a routine."""
    pass


def generate_short_code(length: int = SHORT_CODE_LENGTH) -> str:
    return "".join(random.choices(SHORT_CODE_ALPHABET, k=length))


def _is_duplicate(resp) -> bool:
    return resp.status_code == 409 or (resp.status_code == 400 and "duplicate" in resp.text.lower())


def _clean_ids(section_ids: List[Any]) -> List[int]:
    """Validate section ids, dropping repeats. Raises ValueError on non-integers."""
    cleaned: List[int] = []
    for raw in section_ids:
        if isinstance(raw, bool):
            raise ValueError(f"Invalid section id: {raw!r}")
        try:
            section_id = int(raw)
        except (TypeError, ValueError):
            raise ValueError(f"Invalid section id: {raw!r}") from None
        if section_id not in cleaned:
            cleaned.append(section_id)
    return cleaned


def _fetch_row(short_code: str) -> Optional[Dict[str, Any]]:
    encoded = urllib.parse.quote(short_code, safe="")
    resp = supabase_request("GET", f"{TABLE_PATH}?short_code=eq.{encoded}&select=*")
    if resp.status_code != 200:
        raise SharedRoutineError(f"Failed to load routine: {resp.text}")
    rows = resp.json() or []
    return rows[0] if rows else None


def create_routine(section_ids: List[Any], creator_session_id: str) -> SharedRoutine:
    """
    Publish a routine under a fresh short code.

    Args:
        section_ids: Section ids in the routine
        creator_session_id: Opaque id of the creating client, required for updates

    Returns:
        The created SharedRoutine (sections not resolved)

    Raises:
        ValueError: If the routine is empty or the ids are invalid
        SharedRoutineError: If the insert fails or no unique code could be found
    """
    ids = _clean_ids(section_ids)
    if not ids:
        raise ValueError("Routine must contain at least one section")
    if not creator_session_id:
        raise ValueError("creatorSessionId is required")

    for attempt in range(MAX_CODE_ATTEMPTS):
        payload = {
            "short_code": generate_short_code(),
            "section_ids": ids,
            "creator_session_id": creator_session_id,
            "access_count": 0,
        }
        resp = supabase_request(
            "POST",
            TABLE_PATH,
            json=payload,
            headers={"Prefer": "return=representation"},
        )

        if _is_duplicate(resp):
            logger.info(f"Short code collision on attempt {attempt + 1}, retrying")
            continue

        if resp.status_code not in (200, 201):
            raise SharedRoutineError(f"Failed to create routine: {resp.text}")

        rows = resp.json()
        if not rows:
            raise SharedRoutineError("No data returned from insert")

        routine = SharedRoutine.from_db_row(rows[0])
        logger.info(f"Created shared routine {routine.short_code} with {len(ids)} sections")
        return routine

    raise SharedRoutineError("Could not allocate a unique short code")


def get_routine(short_code: str, resolve_sections: bool = True) -> SharedRoutine:
    """
    Load a routine by short code and count the access.

    Raises:
        RoutineNotFoundError: If no routine has this code
        CatalogUnavailableError: If sections are requested and the catalog can't be loaded
    """
    short_code = short_code.strip()
    row = _fetch_row(short_code) if short_code else None
    if row is None:
        raise RoutineNotFoundError(f"Routine {short_code!r} not found")

    routine = SharedRoutine.from_db_row(row)

    access_count = routine.access_count + 1
    resp = supabase_request(
        "PATCH",
        f"{TABLE_PATH}?id=eq.{routine.routine_id}",
        json={"access_count": access_count},
    )
    if resp.status_code in (200, 204):
        routine.access_count = access_count
    else:
        # The count is informational; a failed bump doesn't fail the read
        logger.warning(f"Failed to bump access count for {short_code}: {resp.status_code}")

    if resolve_sections:
        routine.sections = catalog_service.sections_by_ids(routine.section_ids)
        missing = len(routine.section_ids) - len(routine.sections)
        if missing:
            logger.info(f"Routine {short_code}: {missing} sections no longer in the catalog")
    return routine


def update_routine(short_code: str, section_ids: List[Any], creator_session_id: str) -> SharedRoutine:
    """
    Replace a routine's sections. Only the creating session may do this.

    Raises:
        ValueError: If the ids are invalid
        RoutineNotFoundError: If no routine has this code
        UnauthorizedUpdateError: If the session doesn't match the creator's
        SharedRoutineError: If the update fails
    """
    ids = _clean_ids(section_ids)
    row = _fetch_row(short_code.strip()) if short_code.strip() else None
    if row is None:
        raise RoutineNotFoundError(f"Routine {short_code!r} not found")

    if not creator_session_id or row.get("creator_session_id") != creator_session_id:
        raise UnauthorizedUpdateError("Only the creator can update this routine")

    resp = supabase_request(
        "PATCH",
        f"{TABLE_PATH}?id=eq.{row['id']}",
        json={
            "section_ids": ids,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        },
        headers={"Prefer": "return=representation"},
    )
    if resp.status_code not in (200, 204):
        raise SharedRoutineError(f"Failed to update routine: {resp.text}")

    rows = resp.json() if resp.status_code == 200 else []
    routine = SharedRoutine.from_db_row(rows[0] if rows else {**row, "section_ids": ids})
    logger.info(f"Updated shared routine {routine.short_code} ({len(ids)} sections)")
    return routine
