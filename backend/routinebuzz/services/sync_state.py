"""
Sync status of a routine and the transition table between statuses.
"""
from enum import Enum
from typing import Dict, Tuple


class SyncStatus(str, Enum):
    UNSHARED = "unshared"
    CREATOR_SYNCED = "creator_synced"
    CREATOR_SYNCING = "creator_syncing"
    VIEWER_CONNECTING = "viewer_connecting"
    VIEWER_LIVE = "viewer_live"
    VIEWER_DIVERGED = "viewer_diverged"

    @property
    def is_creator(self) -> bool:
        return self in (SyncStatus.CREATOR_SYNCED, SyncStatus.CREATOR_SYNCING)

    @property
    def is_viewer(self) -> bool:
        return self in (SyncStatus.VIEWER_CONNECTING, SyncStatus.VIEWER_LIVE, SyncStatus.VIEWER_DIVERGED)

    @property
    def receives_updates(self) -> bool:
        return self in (SyncStatus.VIEWER_CONNECTING, SyncStatus.VIEWER_LIVE)


class SyncEvent(str, Enum):
    SHARE_CREATED = "share_created"
    CREATOR_RESTORED = "creator_restored"
    VIEW_OPENED = "view_opened"
    SUBSCRIBED = "subscribed"
    SUBSCRIPTION_LOST = "subscription_lost"
    LOCAL_MUTATION = "local_mutation"
    REMOTE_NOTIFICATION = "remote_notification"
    PUSH_CONFIRMED = "push_confirmed"
    PUSH_FAILED = "push_failed"
    DETACHED = "detached"


class InvalidTransitionError(Exception):
    """Raised when an event has no meaning in the current status."""

    def __init__(self, status: SyncStatus, event: SyncEvent):
        super().__init__(f"{event.value} is not valid in status {status.value}")
        self.status = status
        self.event = event


S = SyncStatus
E = SyncEvent

_TRANSITIONS: Dict[Tuple[SyncStatus, SyncEvent], SyncStatus] = {
    (S.UNSHARED, E.SHARE_CREATED): S.CREATOR_SYNCED,
    (S.UNSHARED, E.CREATOR_RESTORED): S.CREATOR_SYNCED,
    (S.UNSHARED, E.LOCAL_MUTATION): S.UNSHARED,

    (S.CREATOR_SYNCED, E.SHARE_CREATED): S.CREATOR_SYNCED,
    (S.CREATOR_SYNCED, E.CREATOR_RESTORED): S.CREATOR_SYNCED,
    (S.CREATOR_SYNCED, E.LOCAL_MUTATION): S.CREATOR_SYNCING,
    (S.CREATOR_SYNCED, E.PUSH_CONFIRMED): S.CREATOR_SYNCED,
    (S.CREATOR_SYNCED, E.PUSH_FAILED): S.CREATOR_SYNCED,

    (S.CREATOR_SYNCING, E.SHARE_CREATED): S.CREATOR_SYNCING,
    (S.CREATOR_SYNCING, E.CREATOR_RESTORED): S.CREATOR_SYNCED,
    (S.CREATOR_SYNCING, E.LOCAL_MUTATION): S.CREATOR_SYNCING,
    (S.CREATOR_SYNCING, E.PUSH_CONFIRMED): S.CREATOR_SYNCED,
    (S.CREATOR_SYNCING, E.PUSH_FAILED): S.CREATOR_SYNCED,

    (S.VIEWER_CONNECTING, E.SUBSCRIBED): S.VIEWER_LIVE,
    (S.VIEWER_CONNECTING, E.SUBSCRIPTION_LOST): S.VIEWER_CONNECTING,
    (S.VIEWER_CONNECTING, E.REMOTE_NOTIFICATION): S.VIEWER_CONNECTING,
    (S.VIEWER_CONNECTING, E.LOCAL_MUTATION): S.VIEWER_DIVERGED,
    (S.VIEWER_CONNECTING, E.SHARE_CREATED): S.CREATOR_SYNCED,
    (S.VIEWER_CONNECTING, E.CREATOR_RESTORED): S.CREATOR_SYNCED,

    (S.VIEWER_LIVE, E.SUBSCRIBED): S.VIEWER_LIVE,
    (S.VIEWER_LIVE, E.SUBSCRIPTION_LOST): S.VIEWER_CONNECTING,
    (S.VIEWER_LIVE, E.REMOTE_NOTIFICATION): S.VIEWER_LIVE,
    (S.VIEWER_LIVE, E.LOCAL_MUTATION): S.VIEWER_DIVERGED,
    (S.VIEWER_LIVE, E.SHARE_CREATED): S.CREATOR_SYNCED,
    (S.VIEWER_LIVE, E.CREATOR_RESTORED): S.CREATOR_SYNCED,

    # Divergence is one-way: only detaching, re-sharing or opening a link leaves it
    (S.VIEWER_DIVERGED, E.SUBSCRIBED): S.VIEWER_DIVERGED,
    (S.VIEWER_DIVERGED, E.SUBSCRIPTION_LOST): S.VIEWER_DIVERGED,
    (S.VIEWER_DIVERGED, E.REMOTE_NOTIFICATION): S.VIEWER_DIVERGED,
    (S.VIEWER_DIVERGED, E.LOCAL_MUTATION): S.VIEWER_DIVERGED,
    (S.VIEWER_DIVERGED, E.SHARE_CREATED): S.CREATOR_SYNCED,
    (S.VIEWER_DIVERGED, E.CREATOR_RESTORED): S.CREATOR_SYNCED,
}

for _status in SyncStatus:
    _TRANSITIONS[(_status, E.VIEW_OPENED)] = S.VIEWER_CONNECTING
    _TRANSITIONS[(_status, E.DETACHED)] = S.UNSHARED

del S, E, _status


def transition(status: SyncStatus, event: SyncEvent) -> SyncStatus:
    """Next status for `event` in `status`. Raises InvalidTransitionError for undefined pairs."""
    try:
        return _TRANSITIONS[(status, event)]
    except KeyError:
        raise InvalidTransitionError(status, event) from None
