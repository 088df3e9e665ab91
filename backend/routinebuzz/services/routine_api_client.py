"""
Client for the shared-routine HTTP API (/routine/create, /routine/get, /routine/update).

This is the remote store a SharedRoutineSync pushes to and re-fetches from.
"""
import logging
from typing import Any, Dict, List, Optional, Protocol

import requests
from requests.exceptions import RequestException

from routinebuzz.models.routine_types import SharedRoutine

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15


class RoutineApiError(Exception):
    """Base exception for shared-routine API calls."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class SharedRoutineNotFound(RoutineApiError):
    """Raised when a short code does not resolve to a routine."""
    pass


class RemoteRoutineStore(Protocol):
    def create(self, section_ids: List[int], session_id: str) -> str:
        ...

    def get(self, short_code: str) -> SharedRoutine:
        ...

    def update(self, short_code: str, section_ids: List[int], session_id: str) -> bool:
        ...


class RoutineApiClient:
    """requests-based implementation of RemoteRoutineStore."""

    def __init__(self, base_url: str, timeout: int = DEFAULT_TIMEOUT, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        try:
            return self.session.request(method, f"{self.base_url}{path}", timeout=self.timeout, **kwargs)
        except RequestException as e:
            raise RoutineApiError(f"{method} {path} failed: {e}") from e

    @staticmethod
    def _json(response: requests.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError as e:
            raise RoutineApiError("Invalid JSON from routine API", response.status_code) from e
        if not isinstance(body, dict):
            raise RoutineApiError("Unexpected response from routine API", response.status_code)
        return body

    def create(self, section_ids: List[int], session_id: str) -> str:
        """Publish a routine. Returns its short code."""
        response = self._request(
            "POST",
            "/routine/create",
            json={"sectionIds": section_ids, "creatorSessionId": session_id},
        )
        if response.status_code not in (200, 201):
            raise RoutineApiError(f"HTTP {response.status_code}", response.status_code)
        short_code = self._json(response).get("shortCode")
        if not short_code:
            raise RoutineApiError("Routine API did not return a short code", response.status_code)
        return short_code

    def get(self, short_code: str) -> SharedRoutine:
        response = self._request("GET", "/routine/get", params={"code": short_code})
        if response.status_code == 404:
            raise SharedRoutineNotFound("Routine not found", 404)
        if response.status_code != 200:
            raise RoutineApiError(f"HTTP {response.status_code}", response.status_code)
        try:
            return SharedRoutine.from_api(self._json(response))
        except (KeyError, TypeError, ValueError) as e:
            raise RoutineApiError(f"Malformed shared routine: {e}", response.status_code) from e

    def update(self, short_code: str, section_ids: List[int], session_id: str) -> bool:
        """Push the creator's section list. Returns False if the API refused it."""
        response = self._request(
            "POST",
            "/routine/update",
            json={"shortCode": short_code, "sectionIds": section_ids, "creatorSessionId": session_id},
        )
        if response.status_code != 200:
            logger.warning(f"Routine update for {short_code} returned {response.status_code}")
            return False
        return bool(self._json(response).get("success"))
