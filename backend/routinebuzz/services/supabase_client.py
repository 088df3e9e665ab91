"""
Thin PostgREST client for the Supabase project that stores shared routines.
"""
import logging
import os
import time
from typing import Any, Dict, Optional

import requests
from requests.exceptions import ConnectionError, RequestException, Timeout

logger = logging.getLogger(__name__)


class SupabaseError(Exception):
    """Base exception for Supabase-related errors."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.original_error = original_error


class SupabaseConnectionError(SupabaseError, ConnectionError):
    """Raised when Supabase can't be reached after all retries."""
    pass


class SupabaseTimeoutError(SupabaseError, Timeout):
    """Raised when every attempt at a request timed out."""
    pass


class SupabaseServerError(SupabaseError):
    """Raised when Supabase keeps returning 5xx."""

    def __init__(self, message: str, status_code: int, original_error: Optional[Exception] = None):
        super().__init__(message, original_error)
        self.status_code = status_code


class SupabaseClientError(SupabaseError):
    """Raised when Supabase returns a 4xx error."""

    def __init__(self, message: str, status_code: int, response_body: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class SupabaseConfigError(SupabaseError, RuntimeError):
    """Raised when SUPABASE_* settings are missing."""
    pass


def _get_env(key: str, default: str = "") -> str:
    """Get environment variable, stripping whitespace."""
    return (os.getenv(key) or default).strip()


SUPABASE_URL = _get_env("SUPABASE_URL").rstrip("/")
SUPABASE_ANON_KEY = _get_env("SUPABASE_ANON_KEY")
SUPABASE_SERVICE_KEY = _get_env("SUPABASE_SERVICE_ROLE_KEY")

DEFAULT_TIMEOUT = int(_get_env("SUPABASE_TIMEOUT", "30"))
MAX_RETRIES = int(_get_env("SUPABASE_MAX_RETRIES", "3"))
INITIAL_BACKOFF = float(_get_env("SUPABASE_INITIAL_BACKOFF", "1.0"))


def supabase_configured() -> bool:
    return bool(SUPABASE_URL and SUPABASE_ANON_KEY)


def ensure_supabase_env() -> None:
    missing = [
        name for name, value in (("SUPABASE_URL", SUPABASE_URL), ("SUPABASE_ANON_KEY", SUPABASE_ANON_KEY))
        if not value
    ]
    if missing:
        raise SupabaseConfigError(f"Missing Supabase configuration: {', '.join(missing)}")


def supabase_headers() -> Dict[str, str]:
    # The service key bypasses row-level security; the anon key is enough for public tables
    token = SUPABASE_SERVICE_KEY or SUPABASE_ANON_KEY
    return {
        "apikey": SUPABASE_ANON_KEY,
        "Authorization": f"Bearer {token}",
        "Content-Type": "application/json",
    }


def _backoff(attempt: int) -> float:
    return INITIAL_BACKOFF * (2 ** attempt)


def supabase_request(
    method: str,
    path: str,
    timeout: Optional[int] = None,
    max_retries: Optional[int] = None,
    raise_on_error: bool = False,
    **kwargs: Any
) -> requests.Response:
    """
    Make a request to Supabase, retrying connection errors, timeouts and 5xx responses.

    Args:
        method: HTTP method
        path: API path (e.g., /rest/v1/shared_routines)
        timeout: Request timeout in seconds (default: SUPABASE_TIMEOUT)
        max_retries: Retries for transient errors (default: SUPABASE_MAX_RETRIES)
        raise_on_error: Raise SupabaseClientError/SupabaseServerError instead of
                        returning 4xx/5xx responses to the caller
        **kwargs: Passed through to requests.request()

    Raises:
        SupabaseConfigError: If Supabase configuration is missing
        SupabaseConnectionError: If unable to connect after retries
        SupabaseTimeoutError: If the request times out after retries
        SupabaseServerError: On a 5xx after retries (only if raise_on_error=True)
        SupabaseClientError: On a 4xx (only if raise_on_error=True)
        SupabaseError: For other request failures
    """
    ensure_supabase_env()

    method = method.upper()
    url = f"{SUPABASE_URL}{path}"
    headers = {**supabase_headers(), **kwargs.pop("headers", {})}
    request_timeout = timeout if timeout is not None else DEFAULT_TIMEOUT
    retries = max_retries if max_retries is not None else MAX_RETRIES

    for attempt in range(retries + 1):
        last_attempt = attempt == retries
        logger.debug(f"Supabase request attempt {attempt + 1}/{retries + 1}: {method} {path}")
        try:
            response = requests.request(
                method=method,
                url=url,
                headers=headers,
                timeout=request_timeout,
                **kwargs,
            )
        except ConnectionError as e:
            if last_attempt:
                logger.error(f"Failed to connect to Supabase after {retries + 1} attempts: {e}")
                raise SupabaseConnectionError(
                    f"Failed to connect to Supabase after {retries + 1} attempts", original_error=e
                ) from e
            logger.warning(f"Connection error to Supabase, retrying in {_backoff(attempt):.1f}s: {e}")
            time.sleep(_backoff(attempt))
            continue
        except Timeout as e:
            if last_attempt:
                logger.error(f"Supabase request timed out after {retries + 1} attempts: {e}")
                raise SupabaseTimeoutError(
                    f"Supabase request timed out after {retries + 1} attempts", original_error=e
                ) from e
            logger.warning(f"Supabase request timed out, retrying in {_backoff(attempt):.1f}s: {e}")
            time.sleep(_backoff(attempt))
            continue
        except RequestException as e:
            logger.error(f"Unexpected request error to Supabase: {e}")
            raise SupabaseError(f"Unexpected error making request to Supabase: {e}", original_error=e) from e

        if 500 <= response.status_code < 600:
            if not last_attempt:
                logger.warning(
                    f"Supabase returned {response.status_code}, retrying in {_backoff(attempt):.1f}s "
                    f"(attempt {attempt + 1}/{retries + 1})"
                )
                time.sleep(_backoff(attempt))
                continue
            logger.error(f"Supabase request failed after {retries + 1} attempts: {method} {path} returned {response.status_code}")
            if raise_on_error:
                raise SupabaseServerError(
                    f"Supabase server error: {response.status_code}", status_code=response.status_code
                )
            return response

        if 400 <= response.status_code < 500:
            logger.debug(f"Supabase client response: {method} {path} returned {response.status_code}")
            if raise_on_error:
                raise SupabaseClientError(
                    f"Supabase client error: {response.status_code}",
                    status_code=response.status_code,
                    response_body=response.text,
                )
        return response

    raise SupabaseError("Supabase request failed unexpectedly")


def check_connection(timeout: int = 10) -> bool:
    """True if the Supabase REST endpoint answers without a server error."""
    if not supabase_configured():
        logger.warning("Supabase is not configured, cannot check connection")
        return False
    try:
        response = requests.get(f"{SUPABASE_URL}/rest/v1/", headers=supabase_headers(), timeout=timeout)
    except RequestException as e:
        logger.warning(f"Supabase connection check failed: {e}")
        return False
    if response.status_code >= 500:
        logger.warning(f"Supabase connection check failed with status {response.status_code}")
        return False
    return True
