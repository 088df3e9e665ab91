"""
Unit tests for the sync status transition table.
"""
import pytest

from routinebuzz.services.sync_state import (
    InvalidTransitionError,
    SyncEvent,
    SyncStatus,
    transition,
)


class TestTransitions:
    """Tests for the status transition function."""

    def test_share_from_unshared(self):
        assert transition(SyncStatus.UNSHARED, SyncEvent.SHARE_CREATED) == SyncStatus.CREATOR_SYNCED

    def test_creator_edit_and_push_cycle(self):
        status = transition(SyncStatus.CREATOR_SYNCED, SyncEvent.LOCAL_MUTATION)
        assert status == SyncStatus.CREATOR_SYNCING
        assert transition(status, SyncEvent.LOCAL_MUTATION) == SyncStatus.CREATOR_SYNCING
        assert transition(status, SyncEvent.PUSH_CONFIRMED) == SyncStatus.CREATOR_SYNCED
        assert transition(status, SyncEvent.PUSH_FAILED) == SyncStatus.CREATOR_SYNCED

    def test_viewer_connect_and_lose_subscription(self):
        status = transition(SyncStatus.UNSHARED, SyncEvent.VIEW_OPENED)
        assert status == SyncStatus.VIEWER_CONNECTING
        status = transition(status, SyncEvent.SUBSCRIBED)
        assert status == SyncStatus.VIEWER_LIVE
        assert transition(status, SyncEvent.SUBSCRIPTION_LOST) == SyncStatus.VIEWER_CONNECTING

    @pytest.mark.parametrize("status", [SyncStatus.VIEWER_CONNECTING, SyncStatus.VIEWER_LIVE])
    def test_viewer_local_edit_diverges(self, status):
        assert transition(status, SyncEvent.LOCAL_MUTATION) == SyncStatus.VIEWER_DIVERGED

    @pytest.mark.parametrize("event", [
        SyncEvent.SUBSCRIBED,
        SyncEvent.SUBSCRIPTION_LOST,
        SyncEvent.REMOTE_NOTIFICATION,
        SyncEvent.LOCAL_MUTATION,
    ])
    def test_divergence_is_one_way(self, event):
        assert transition(SyncStatus.VIEWER_DIVERGED, event) == SyncStatus.VIEWER_DIVERGED

    def test_diverged_viewer_can_reshare(self):
        assert transition(SyncStatus.VIEWER_DIVERGED, SyncEvent.SHARE_CREATED) == SyncStatus.CREATOR_SYNCED

    @pytest.mark.parametrize("status", list(SyncStatus))
    def test_detach_and_open_from_any_status(self, status):
        assert transition(status, SyncEvent.DETACHED) == SyncStatus.UNSHARED
        assert transition(status, SyncEvent.VIEW_OPENED) == SyncStatus.VIEWER_CONNECTING

    def test_undefined_transition_raises(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            transition(SyncStatus.UNSHARED, SyncEvent.PUSH_CONFIRMED)
        assert exc_info.value.status == SyncStatus.UNSHARED
        assert exc_info.value.event == SyncEvent.PUSH_CONFIRMED

    def test_status_roles(self):
        assert SyncStatus.CREATOR_SYNCING.is_creator
        assert SyncStatus.VIEWER_DIVERGED.is_viewer
        assert not SyncStatus.VIEWER_DIVERGED.receives_updates
        assert SyncStatus.VIEWER_LIVE.receives_updates
        assert not SyncStatus.UNSHARED.is_creator
