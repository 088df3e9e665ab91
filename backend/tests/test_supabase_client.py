"""
Unit tests for the Supabase request helper.
"""
from unittest.mock import MagicMock, patch

import pytest
from requests.exceptions import ConnectionError

from routinebuzz.services import supabase_client
from routinebuzz.services.supabase_client import (
    SupabaseClientError,
    SupabaseConfigError,
    SupabaseConnectionError,
    SupabaseServerError,
    supabase_request,
)


@pytest.fixture
def configured(monkeypatch):
    monkeypatch.setattr(supabase_client, "SUPABASE_URL", "https://project.supabase.co")
    monkeypatch.setattr(supabase_client, "SUPABASE_ANON_KEY", "anon-key")
    monkeypatch.setattr(supabase_client, "SUPABASE_SERVICE_KEY", "service-key")
    monkeypatch.setattr(supabase_client, "INITIAL_BACKOFF", 0)


class TestSupabaseRequest:
    """Tests for retries and error mapping."""

    def test_missing_config(self, monkeypatch):
        monkeypatch.setattr(supabase_client, "SUPABASE_URL", "")
        with pytest.raises(SupabaseConfigError):
            supabase_request("GET", "/rest/v1/shared_routines")

    @patch('routinebuzz.services.supabase_client.requests.request')
    def test_success_sends_auth_headers(self, mock_request, configured):
        mock_request.return_value = MagicMock(status_code=200)

        response = supabase_request("GET", "/rest/v1/shared_routines", headers={"Prefer": "count=exact"})

        assert response.status_code == 200
        kwargs = mock_request.call_args.kwargs
        assert kwargs["url"] == "https://project.supabase.co/rest/v1/shared_routines"
        assert kwargs["headers"]["Authorization"] == "Bearer service-key"
        assert kwargs["headers"]["apikey"] == "anon-key"
        assert kwargs["headers"]["Prefer"] == "count=exact"

    @patch('routinebuzz.services.supabase_client.time.sleep')
    @patch('routinebuzz.services.supabase_client.requests.request')
    def test_retries_server_errors(self, mock_request, mock_sleep, configured):
        mock_request.side_effect = [MagicMock(status_code=503), MagicMock(status_code=200)]

        response = supabase_request("GET", "/rest/v1/shared_routines", max_retries=2)

        assert response.status_code == 200
        assert mock_request.call_count == 2

    @patch('routinebuzz.services.supabase_client.time.sleep')
    @patch('routinebuzz.services.supabase_client.requests.request')
    def test_server_error_after_retries(self, mock_request, mock_sleep, configured):
        mock_request.return_value = MagicMock(status_code=500)

        assert supabase_request("GET", "/x", max_retries=1).status_code == 500
        with pytest.raises(SupabaseServerError):
            supabase_request("GET", "/x", max_retries=1, raise_on_error=True)

    @patch('routinebuzz.services.supabase_client.time.sleep')
    @patch('routinebuzz.services.supabase_client.requests.request')
    def test_connection_error_after_retries(self, mock_request, mock_sleep, configured):
        mock_request.side_effect = ConnectionError("refused")

        with pytest.raises(SupabaseConnectionError):
            supabase_request("GET", "/x", max_retries=2)
        assert mock_request.call_count == 3

    @patch('routinebuzz.services.supabase_client.requests.request')
    def test_client_error_is_not_retried(self, mock_request, configured):
        mock_request.return_value = MagicMock(status_code=409, text="duplicate key")

        assert supabase_request("POST", "/x").status_code == 409
        with pytest.raises(SupabaseClientError) as exc_info:
            supabase_request("POST", "/x", raise_on_error=True)
        assert exc_info.value.status_code == 409
        assert mock_request.call_count == 2
