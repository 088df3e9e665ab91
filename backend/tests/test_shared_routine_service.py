"""
Unit tests for the Supabase-backed shared routine service.
"""
from unittest.mock import MagicMock, patch

import pytest

from routinebuzz.services.shared_routine_service import (
    RoutineNotFoundError,
    SharedRoutineError,
    UnauthorizedUpdateError,
    create_routine,
    generate_short_code,
    get_routine,
    update_routine,
)


def _row(**overrides):
    row = {
        "id": "uuid-1",
        "short_code": "Ab3dE5gH",
        "section_ids": [1, 3],
        "creator_session_id": "session_1_abc",
        "access_count": 2,
        "created_at": "2025-01-01T00:00:00Z",
        "updated_at": "2025-01-01T00:00:00Z",
    }
    row.update(overrides)
    return row


class TestShortCodes:
    """Tests for short code generation."""

    def test_length_and_alphabet(self):
        code = generate_short_code()
        assert len(code) == 8
        assert code.isalnum()


class TestCreateRoutine:
    """Tests for publishing a routine."""

    @patch('routinebuzz.services.shared_routine_service.supabase_request')
    def test_create_success(self, mock_request):
        mock_request.return_value = MagicMock(status_code=201, json=lambda: [_row(access_count=0)])

        routine = create_routine([1, 3, 1], "session_1_abc")

        assert routine.short_code == "Ab3dE5gH"
        assert routine.routine_id == "uuid-1"
        payload = mock_request.call_args.kwargs["json"]
        assert payload["section_ids"] == [1, 3]
        assert payload["creator_session_id"] == "session_1_abc"
        assert len(payload["short_code"]) == 8

    @patch('routinebuzz.services.shared_routine_service.supabase_request')
    def test_create_retries_on_code_collision(self, mock_request):
        mock_request.side_effect = [
            MagicMock(status_code=409, text="duplicate key value violates unique constraint"),
            MagicMock(status_code=201, json=lambda: [_row()]),
        ]

        routine = create_routine([1], "session_1_abc")

        assert routine.short_code == "Ab3dE5gH"
        assert mock_request.call_count == 2

    @patch('routinebuzz.services.shared_routine_service.supabase_request')
    def test_create_gives_up_after_repeated_collisions(self, mock_request):
        mock_request.return_value = MagicMock(status_code=409, text="duplicate key")
        with pytest.raises(SharedRoutineError):
            create_routine([1], "session_1_abc")

    @patch('routinebuzz.services.shared_routine_service.supabase_request')
    def test_create_server_error(self, mock_request):
        mock_request.return_value = MagicMock(status_code=500, text="boom")
        with pytest.raises(SharedRoutineError):
            create_routine([1], "session_1_abc")

    @pytest.mark.parametrize("ids,session", [([], "s"), ([1], ""), (["abc"], "s"), ([True], "s")])
    def test_create_rejects_bad_input(self, ids, session):
        with pytest.raises(ValueError):
            create_routine(ids, session)


class TestGetRoutine:
    """Tests for loading a routine by short code."""

    @patch('routinebuzz.services.shared_routine_service.catalog_service.sections_by_ids')
    @patch('routinebuzz.services.shared_routine_service.supabase_request')
    def test_get_increments_access_and_resolves(self, mock_request, mock_sections, make_section):
        mock_request.side_effect = [
            MagicMock(status_code=200, json=lambda: [_row()]),
            MagicMock(status_code=204),
        ]
        mock_sections.return_value = [make_section(1), make_section(3)]

        routine = get_routine("Ab3dE5gH")

        assert routine.access_count == 3
        assert [s.section_id for s in routine.sections] == [1, 3]
        mock_sections.assert_called_once_with([1, 3])
        patch_call = mock_request.call_args_list[1]
        assert patch_call.args == ("PATCH", "/rest/v1/shared_routines?id=eq.uuid-1")
        assert patch_call.kwargs["json"] == {"access_count": 3}

    @patch('routinebuzz.services.shared_routine_service.supabase_request')
    def test_get_not_found(self, mock_request):
        mock_request.return_value = MagicMock(status_code=200, json=lambda: [])
        with pytest.raises(RoutineNotFoundError):
            get_routine("missing1")

    def test_get_blank_code(self):
        with pytest.raises(RoutineNotFoundError):
            get_routine("  ")

    @patch('routinebuzz.services.shared_routine_service.supabase_request')
    def test_failed_access_bump_still_returns(self, mock_request):
        mock_request.side_effect = [
            MagicMock(status_code=200, json=lambda: [_row()]),
            MagicMock(status_code=500),
        ]

        routine = get_routine("Ab3dE5gH", resolve_sections=False)

        assert routine.access_count == 2
        assert routine.sections == []


class TestUpdateRoutine:
    """Tests for creator updates."""

    @patch('routinebuzz.services.shared_routine_service.supabase_request')
    def test_update_by_creator(self, mock_request):
        mock_request.side_effect = [
            MagicMock(status_code=200, json=lambda: [_row()]),
            MagicMock(status_code=200, json=lambda: [_row(section_ids=[1, 5])]),
        ]

        routine = update_routine("Ab3dE5gH", [1, 5], "session_1_abc")

        assert routine.section_ids == [1, 5]
        assert mock_request.call_args_list[1].kwargs["json"]["section_ids"] == [1, 5]

    @patch('routinebuzz.services.shared_routine_service.supabase_request')
    def test_update_by_someone_else(self, mock_request):
        mock_request.return_value = MagicMock(status_code=200, json=lambda: [_row()])

        with pytest.raises(UnauthorizedUpdateError):
            update_routine("Ab3dE5gH", [1], "session_2_xyz")
        assert mock_request.call_count == 1

    @patch('routinebuzz.services.shared_routine_service.supabase_request')
    def test_update_unknown_code(self, mock_request):
        mock_request.return_value = MagicMock(status_code=200, json=lambda: [])
        with pytest.raises(RoutineNotFoundError):
            update_routine("missing1", [1], "session_1_abc")

    @patch('routinebuzz.services.shared_routine_service.supabase_request')
    def test_update_without_representation(self, mock_request):
        mock_request.side_effect = [
            MagicMock(status_code=200, json=lambda: [_row()]),
            MagicMock(status_code=204),
        ]

        routine = update_routine("Ab3dE5gH", [3], "session_1_abc")

        assert routine.section_ids == [3]
