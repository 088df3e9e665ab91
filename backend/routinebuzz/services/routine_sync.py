"""
Shared routine synchronization.

SharedRoutineSync sits between a RoutineStore, the remote shared-routine
store and the realtime push notifier:

- creators push their section list upstream, debounced, after local edits
- viewers re-fetch the routine when the creator changes it and replace theirs
- a viewer who edits locally diverges: the subscription is dropped for good
  and remote snapshots are never applied again in this session

Every asynchronous result is checked against the current status before it is
applied, since the status may have moved on while the call was in flight.
"""
import json
import logging
import os
import random
import string
import threading
import time
import urllib.parse
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional

from routinebuzz.models.routine_types import (
    Notice,
    NoticeLevel,
    Section,
    SharedRoutine,
    SharedRoutineLink,
)
from routinebuzz.services.catalog_service import CatalogUnavailableError
from routinebuzz.services.conflict_detector import has_conflict
from routinebuzz.services.push_notifier import (
    CHANNEL_ERROR,
    CLOSED,
    SUBSCRIBED,
    TIMED_OUT,
    PushNotifier,
    Subscription,
    routine_topic,
)
from routinebuzz.services.routine_api_client import (
    RemoteRoutineStore,
    RoutineApiError,
    SharedRoutineNotFound,
)
from routinebuzz.services.routine_store import (
    SESSION_ID_KEY,
    KeyValueStore,
    RoutineChange,
    RoutineStore,
    routine_signature,
)
from routinebuzz.services.scheduling import Debouncer, Scheduler, ThreadingScheduler
from routinebuzz.services.sync_state import SyncEvent, SyncStatus, transition

logger = logging.getLogger(__name__)


def _get_env(key: str, default: str = "") -> str:
    """Get environment variable, stripping whitespace."""
    return (os.getenv(key) or default).strip()


PUSH_DEBOUNCE_SECONDS = float(_get_env("ROUTINEBUZZ_PUSH_DEBOUNCE_SECONDS", "2.0"))
REFRESH_DEBOUNCE_SECONDS = float(_get_env("ROUTINEBUZZ_REFRESH_DEBOUNCE_SECONDS", "0.5"))
PUBLIC_APP_URL = _get_env("PUBLIC_APP_URL", "http://localhost:5173").rstrip("/")

_CHANNEL_ERRORS = {
    CHANNEL_ERROR: "Connection error",
    TIMED_OUT: "Connection timed out",
    CLOSED: None,
}


class RoutineShareError(Exception):
    """Base exception for sharing a routine."""
    pass


class EmptyRoutineError(RoutineShareError):
    """Raised when sharing a routine with no sections."""
    pass


@dataclass(frozen=True)
class ShareLink:
    """Result of share(). Legacy links embed the section ids when publishing failed."""
    url: str
    short_code: Optional[str] = None
    is_legacy: bool = False


def creator_session_id(storage: KeyValueStore) -> str:
    """Opaque id proving this client created a routine. Generated once and persisted."""
    session_id = storage.get(SESSION_ID_KEY)
    if not session_id:
        suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=13))
        session_id = f"session_{int(time.time() * 1000)}_{suffix}"
        storage.set(SESSION_ID_KEY, session_id)
    return session_id


def share_url(short_code: str, app_url: str = PUBLIC_APP_URL) -> str:
    return f"{app_url}/?r={short_code}"


def legacy_share_url(section_ids: List[int], app_url: str = PUBLIC_APP_URL) -> str:
    encoded = urllib.parse.quote(json.dumps(section_ids, separators=(",", ":")), safe="")
    return f"{app_url}/?routine={encoded}"


class SharedRoutineSync:
    """Sync state machine for one routine."""

    def __init__(
        self,
        store: RoutineStore,
        remote: RemoteRoutineStore,
        notifier: PushNotifier,
        scheduler: Optional[Scheduler] = None,
        fetch_sections_by_ids: Optional[Callable[[List[int]], List[Section]]] = None,
        push_delay: float = PUSH_DEBOUNCE_SECONDS,
        refresh_delay: float = REFRESH_DEBOUNCE_SECONDS,
        app_url: str = PUBLIC_APP_URL,
    ):
        self.store = store
        self.remote = remote
        self.notifier = notifier
        self.fetch_sections_by_ids = fetch_sections_by_ids
        self.app_url = app_url.rstrip("/")
        scheduler = scheduler or ThreadingScheduler()
        self.push_debouncer = Debouncer(scheduler, push_delay, "creator-push")
        self.refresh_debouncer = Debouncer(scheduler, refresh_delay, "viewer-refresh")

        self._lock = threading.RLock()
        self._status = SyncStatus.UNSHARED
        self._subscription: Optional[Subscription] = None
        self._generation = 0
        self._last_synced_signature = ""
        self._last_applied_signature = ""
        self._notices: List[Notice] = []
        self.is_pushing = False
        self.last_push_error: Optional[str] = None
        self.connection_error: Optional[str] = None
        self.last_updated: Optional[datetime] = None

        self._unsubscribe_store = store.subscribe(self._on_routine_change)
        self._restore_link()

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    @property
    def status(self) -> SyncStatus:
        return self._status

    @property
    def has_local_changes(self) -> bool:
        return self._status == SyncStatus.VIEWER_DIVERGED

    @property
    def is_subscribed(self) -> bool:
        return self._subscription is not None

    def _fire(self, event: SyncEvent) -> SyncStatus:
        previous = self._status
        self._status = transition(previous, event)
        if self._status != previous:
            logger.debug(f"Sync status {previous.value} -> {self._status.value} on {event.value}")
        return self._status

    def _notify(self, level: NoticeLevel, title: str, message: str) -> None:
        self._notices.append(Notice(level=level, title=title, message=message))

    def drain_notices(self) -> List[Notice]:
        """Return and forget the notices queued since the last call."""
        with self._lock:
            notices, self._notices = self._notices, []
        return notices

    # ------------------------------------------------------------------
    # Link lifecycle
    # ------------------------------------------------------------------

    def _restore_link(self) -> None:
        link = self.store.link
        if link is None:
            return
        if link.is_creator:
            self._fire(SyncEvent.CREATOR_RESTORED)
            # Nothing is known about what the remote copy holds yet
            self._last_synced_signature = ""
            self._schedule_push()
        else:
            self._fire(SyncEvent.VIEW_OPENED)
            self._last_applied_signature = self.store.signature()
            self._subscribe(link.short_code)

    def _subscribe(self, short_code: str) -> None:
        self._teardown_subscription()
        generation = self._generation
        self.connection_error = None
        self._subscription = self.notifier.subscribe(
            routine_topic(short_code),
            lambda: self._on_remote_change(generation),
            lambda channel_status: self._on_channel_status(generation, channel_status),
        )

    def _teardown_subscription(self) -> None:
        # Bumping the generation invalidates callbacks of the old subscription
        self._generation += 1
        self.refresh_debouncer.cancel()
        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            subscription.unsubscribe()

    def _detach(self) -> None:
        self._teardown_subscription()
        self.push_debouncer.cancel()
        self._last_synced_signature = ""
        self._last_applied_signature = ""
        self.connection_error = None

    def share(self) -> ShareLink:
        """
        Publish the routine, or return the existing link if this client already owns it.

        Raises:
            EmptyRoutineError: If the routine has no sections
        """
        with self._lock:
            if self.store.count() == 0:
                raise EmptyRoutineError("Add courses to your routine before sharing")
            link = self.store.link
            if link is not None and link.is_creator and self._status.is_creator:
                self._fire(SyncEvent.SHARE_CREATED)
                return ShareLink(url=share_url(link.short_code, self.app_url), short_code=link.short_code)
            section_ids = self.store.section_ids()
            session_id = creator_session_id(self.store.storage)

        try:
            short_code = self.remote.create(section_ids, session_id)
        except RoutineApiError as e:
            logger.error(f"Error creating share link: {e}")
            return ShareLink(url=legacy_share_url(section_ids, self.app_url), is_legacy=True)

        with self._lock:
            self._detach()
            self.store.set_link(SharedRoutineLink(short_code=short_code, is_creator=True))
            self.store.routine_mode = True
            self._fire(SyncEvent.SHARE_CREATED)
            # The first push only goes out if the routine changed during create()
            self._last_synced_signature = routine_signature(section_ids)
            self._schedule_push()
        logger.info(f"Shared routine {short_code} with {len(section_ids)} sections")
        return ShareLink(url=share_url(short_code, self.app_url), short_code=short_code)

    def open_shared_routine(self, short_code: str) -> bool:
        """
        Load a routine from its short code and follow it.

        Ownership is recognized only when the stored link already records this
        code as created here. Failures leave the routine untouched and queue a notice.
        """
        short_code = short_code.strip()
        try:
            snapshot = self.remote.get(short_code)
        except SharedRoutineNotFound as e:
            logger.warning(f"Shared routine {short_code} not found: {e}")
            with self._lock:
                self._notify(NoticeLevel.WARNING, "Routine Not Found", "This routine link is invalid or expired")
            return False
        except RoutineApiError as e:
            logger.error(f"Error loading shared routine {short_code}: {e}")
            with self._lock:
                self._notify(NoticeLevel.DANGER, "Load Failed", "Could not load shared routine")
            return False

        if not snapshot.sections:
            with self._lock:
                self._notify(NoticeLevel.WARNING, "Routine Not Found", "This routine link is invalid or expired")
            return False

        with self._lock:
            previous = self.store.link
            is_creator = previous is not None and previous.short_code == short_code and previous.is_creator
            self._detach()
            self.store.replace(snapshot.sections, kind="load")
            self.store.routine_mode = True
            self.store.set_link(SharedRoutineLink(short_code=short_code, is_creator=is_creator))
            if is_creator:
                self._fire(SyncEvent.CREATOR_RESTORED)
                self._last_synced_signature = self.store.signature()
            else:
                self._fire(SyncEvent.VIEW_OPENED)
                self._last_applied_signature = self.store.signature()
                self._subscribe(short_code)
            self._notify(
                NoticeLevel.SUCCESS,
                "Routine Loaded",
                f"Loaded shared routine with {len(snapshot.sections)} courses",
            )
        logger.info(f"Opened shared routine {short_code} (creator={is_creator}, accessCount={snapshot.access_count})")
        return True

    def open_legacy_routine(self, section_ids: List[int]) -> bool:
        """Load a routine from a link that embeds section ids instead of a short code."""
        if not section_ids or self.fetch_sections_by_ids is None:
            return False
        try:
            sections = self.fetch_sections_by_ids(section_ids)
        except CatalogUnavailableError as e:
            logger.error(f"Error loading shared routine: {e}")
            with self._lock:
                self._notify(NoticeLevel.DANGER, "Load Failed", "Could not load shared routine")
            return False

        with self._lock:
            if not sections:
                self._notify(NoticeLevel.WARNING, "Routine Not Found", "No matching sections for this shared link")
                return False
            self._detach()
            self.store.set_link(None)
            self._fire(SyncEvent.DETACHED)
            self.store.replace(sections, kind="load")
            self.store.routine_mode = True
            self._notify(NoticeLevel.SUCCESS, "Routine Loaded", f"Loaded shared routine with {len(sections)} courses")
        return True

    def refresh_seats(self) -> bool:
        """Merge fresh seat counts from the catalog into the routine. Returns True if any changed."""
        section_ids = self.store.section_ids()
        if not section_ids or self.fetch_sections_by_ids is None:
            return False
        try:
            fresh = self.fetch_sections_by_ids(section_ids)
        except CatalogUnavailableError as e:
            logger.warning(f"Seat refresh skipped: {e}")
            return False
        with self._lock:
            return self.store.refresh_seats(fresh)

    def clear_routine(self) -> None:
        """Empty the routine and detach from any share."""
        with self._lock:
            self.store.clear()
            # An already-empty store does not notify
            if self._status != SyncStatus.UNSHARED:
                self._detach()
                self._fire(SyncEvent.DETACHED)

    def reconcile_from_storage(self) -> bool:
        """
        Pick up changes another process made to the persisted routine.

        Returns True if the routine or its link changed.
        """
        with self._lock:
            before = self.store.link
            changed = self.store.reconcile_from_storage()
            link = self.store.link
            if link == before:
                return changed

            self._detach()
            if link is None:
                self._fire(SyncEvent.DETACHED)
            elif link.is_creator:
                self._fire(SyncEvent.CREATOR_RESTORED)
                self._last_synced_signature = self.store.signature()
            else:
                self._fire(SyncEvent.VIEW_OPENED)
                self._last_applied_signature = self.store.signature()
                self._subscribe(link.short_code)
            return True

    def close(self) -> None:
        """Stop listening and cancel pending work."""
        with self._lock:
            self._teardown_subscription()
            self.push_debouncer.cancel()
            self._unsubscribe_store()

    # ------------------------------------------------------------------
    # Local edits
    # ------------------------------------------------------------------

    def add_section(self, section: Section) -> bool:
        """Add a section to the routine, queueing a notice about conflicts."""
        with self._lock:
            existing = list(self.store.sections)
            if not self.store.add(section):
                return False
            if has_conflict(existing, section):
                self._notify(
                    NoticeLevel.DANGER,
                    "Schedule Conflict!",
                    f"{section.course_code} conflicts with existing courses",
                )
            else:
                self._notify(
                    NoticeLevel.SUCCESS,
                    "Course Added",
                    f"{section.course_code} added to routine successfully",
                )
        return True

    def remove_section(self, section_id: int) -> None:
        with self._lock:
            self.store.remove(section_id)

    def _on_routine_change(self, change: RoutineChange) -> None:
        if change.kind == "clear":
            # Clearing the store drops its link, so no shared status may survive it
            with self._lock:
                self._detach()
                self._fire(SyncEvent.DETACHED)
            return
        if not change.is_local_edit:
            return
        with self._lock:
            was_following = self._status.receives_updates
            status = self._fire(SyncEvent.LOCAL_MUTATION)
            if status.is_creator:
                self._schedule_push()
            elif was_following and status == SyncStatus.VIEWER_DIVERGED:
                logger.info("Local edit on a viewed routine; no longer following the creator")
                self._teardown_subscription()

    # ------------------------------------------------------------------
    # Outbound: creator push
    # ------------------------------------------------------------------

    def _schedule_push(self) -> None:
        self.push_debouncer.trigger(self._push)

    def _finish_push(self, event: SyncEvent) -> None:
        # A newer edit re-armed the debounce; stay in creator_syncing for it
        if not self.push_debouncer.pending:
            self._fire(event)

    def _push(self) -> None:
        with self._lock:
            link = self.store.link
            if link is None:
                if self._status != SyncStatus.UNSHARED:
                    logger.warning("Shared routine link vanished before push; detaching")
                    self._detach()
                    self._fire(SyncEvent.DETACHED)
                return
            if not link.is_creator or not self._status.is_creator:
                return
            section_ids = self.store.section_ids()
            signature = routine_signature(section_ids)
            # An emptied routine is not pushed; the remote copy keeps its last sections
            if not section_ids or signature == self._last_synced_signature:
                self._finish_push(SyncEvent.PUSH_CONFIRMED)
                return
            session_id = creator_session_id(self.store.storage)
            self.is_pushing = True

        error: Optional[str] = None
        try:
            success = self.remote.update(link.short_code, section_ids, session_id)
        except RoutineApiError as e:
            success = False
            error = str(e)

        with self._lock:
            self.is_pushing = False
            if self.store.link != link or not self._status.is_creator:
                return
            if success:
                self._last_synced_signature = signature
                self.last_push_error = None
                self._finish_push(SyncEvent.PUSH_CONFIRMED)
                logger.info(f"Synced routine {link.short_code} ({len(section_ids)} sections)")
            else:
                self.last_push_error = error or "update rejected"
                self._finish_push(SyncEvent.PUSH_FAILED)
                logger.error(f"Failed to sync routine {link.short_code}: {self.last_push_error}")

    # ------------------------------------------------------------------
    # Inbound: viewer refresh
    # ------------------------------------------------------------------

    def _on_channel_status(self, generation: int, channel_status: str) -> None:
        with self._lock:
            if generation != self._generation:
                return
            logger.debug(f"[Realtime] Channel status: {channel_status}")
            if channel_status == SUBSCRIBED:
                self.connection_error = None
                self._fire(SyncEvent.SUBSCRIBED)
            elif channel_status in _CHANNEL_ERRORS:
                self.connection_error = _CHANNEL_ERRORS[channel_status]
                self._fire(SyncEvent.SUBSCRIPTION_LOST)

    def _on_remote_change(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation or not self._status.receives_updates:
                return
            self._fire(SyncEvent.REMOTE_NOTIFICATION)
            short_code = self.store.link.short_code
            self.refresh_debouncer.trigger(lambda: self._refresh(generation, short_code))

    def _refresh(self, generation: int, short_code: str) -> None:
        with self._lock:
            if generation != self._generation or not self._status.receives_updates:
                return
        try:
            snapshot = self.remote.get(short_code)
        except RoutineApiError as e:
            logger.error(f"Error fetching updated routine {short_code}: {e}")
            return
        self.apply_remote_snapshot(snapshot, generation)

    def apply_remote_snapshot(self, snapshot: SharedRoutine, generation: Optional[int] = None) -> bool:
        """
        Replace the routine with a creator's snapshot.

        Skipped once the viewer has diverged (checked now, not when the fetch
        started) and when the snapshot's signature matches the last one applied.
        Returns True if the routine was replaced.
        """
        with self._lock:
            if generation is not None and generation != self._generation:
                logger.debug("Discarding snapshot from a closed subscription")
                return False
            if not self._status.receives_updates:
                logger.debug(f"Discarding remote snapshot in status {self._status.value}")
                return False
            signature = routine_signature(s.section_id for s in snapshot.sections)
            if signature == self._last_applied_signature:
                return False
            self._last_applied_signature = signature
            self.store.replace(snapshot.sections, kind="remote")
            self.last_updated = datetime.now(timezone.utc)
            self._notify(NoticeLevel.INFO, "Routine Updated", "The creator has modified this routine")
        logger.info(f"Applied remote update ({len(snapshot.sections)} sections)")
        return True
