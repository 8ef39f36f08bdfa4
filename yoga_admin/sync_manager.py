"""
Firebase Sync Manager

Keeps the local SQLite store in agreement with Firebase:
- Initial import: the first time the device is online, every course and then
  every class is read once and upserted by remote key. Classes get their
  local course_id through the parent course's remote key.
- Realtime pull: listeners on the courses and classes nodes apply remote
  changes, including deletions, to the local store.
- Bulk upload: pushes every local row to Firebase (manual sync action).

Local writes are pushed by the repositories themselves, not from here.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from yoga_admin.errors import LocalStoreError, RemoteStoreError, SyncInProgressError
from yoga_admin.firebase_db import CLASSES_NODE, COURSES_NODE
from yoga_admin.models import Course, YogaClass
from yoga_admin.write_through import push_record

logger = logging.getLogger(__name__)


@dataclass
class SyncReport:
    """What one initial import sweep did."""
    courses_imported: int = 0
    classes_imported: int = 0
    classes_skipped: int = 0
    records_failed: int = 0
    already_complete: bool = False
    cancelled: bool = False
    error: Optional[str] = None

    @property
    def completed(self) -> bool:
        return not self.already_complete and not self.cancelled and self.error is None

    def summary(self) -> str:
        if self.already_complete:
            return "Initial sync already performed"
        if self.cancelled:
            return "Initial sync cancelled"
        if self.error:
            return f"Initial sync failed: {self.error}"
        text = f"Imported {self.courses_imported} courses and {self.classes_imported} classes"
        if self.classes_skipped:
            text += f" ({self.classes_skipped} classes skipped, parent course unknown)"
        if self.records_failed:
            text += f"; {self.records_failed} records could not be stored locally"
        return text


class FirebaseSyncManager:
    def __init__(self, local_db, remote_db, course_repository, class_repository, preferences):
        self.local_db = local_db
        self.remote_db = remote_db
        self.course_repository = course_repository
        self.class_repository = class_repository
        self.preferences = preferences

        self.last_sync: Optional[datetime] = None
        self._sync_lock = threading.Lock()
        self._listeners = {}
        self._listeners_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Initial import
    # ------------------------------------------------------------------

    def perform_initial_sync(self, cancel_event: Optional[threading.Event] = None) -> SyncReport:
        """
        Import all courses, then all classes, unless a previous import finished.

        Both phases upsert by remote key, so a sweep interrupted halfway can
        simply run again; the completion flag is only set once both phases
        have gone through.

        Raises:
            SyncInProgressError: another sweep is running
        """
        if self.preferences.is_initial_sync_complete():
            logger.info("Initial sync already performed")
            return SyncReport(already_complete=True)
        if self.remote_db is None:
            return SyncReport(error="Not connected to Firebase")

        if not self._sync_lock.acquire(blocking=False):
            raise SyncInProgressError("An initial sync is already running")
        try:
            return self._run_initial_sync(cancel_event or threading.Event())
        finally:
            self._sync_lock.release()

    def _run_initial_sync(self, cancel_event: threading.Event) -> SyncReport:
        report = SyncReport()
        logger.info("Starting initial sync from Firebase...")
        try:
            courses = self.remote_db.get_children(COURSES_NODE)
            for key, data in courses.items():
                if cancel_event.is_set():
                    return self._cancelled(report)
                stored = self._store(self._apply_course, COURSES_NODE, key, data)
                if stored:
                    report.courses_imported += 1
                elif stored is None:
                    report.records_failed += 1
            logger.info("Courses synced: %d", report.courses_imported)

            classes = self.remote_db.get_children(CLASSES_NODE)
            for key, data in classes.items():
                if cancel_event.is_set():
                    return self._cancelled(report)
                stored = self._store(self._apply_class, CLASSES_NODE, key, data)
                if stored:
                    report.classes_imported += 1
                elif stored is None:
                    report.records_failed += 1
                else:
                    report.classes_skipped += 1
            logger.info("Classes synced: %d (%d skipped)", report.classes_imported, report.classes_skipped)
        except RemoteStoreError as e:
            logger.error("Initial sync failed: %s", e)
            report.error = str(e)
            return report

        self.preferences.set_initial_sync_complete(True)
        self.last_sync = datetime.now()
        logger.info("Initial sync completed at %s", self.last_sync)
        return report

    @staticmethod
    def _store(apply, node: str, key: str, data: Any) -> Optional[bool]:
        """Run apply for one record; None when the local store rejects it (e.g. a CHECK constraint)"""
        try:
            return apply(key, data)
        except LocalStoreError as e:
            logger.error("Could not store %s %s locally: %s", node, key, e)
            return None

    @staticmethod
    def _cancelled(report: SyncReport) -> SyncReport:
        logger.warning("Initial sync cancelled after %d courses and %d classes",
                       report.courses_imported, report.classes_imported)
        report.cancelled = True
        return report

    def _apply_course(self, key: str, data: Any) -> bool:
        if not isinstance(data, dict):
            logger.warning("Ignoring malformed course record %s", key)
            return False
        self.course_repository.upsert_from_sync(Course.from_firebase(key, data))
        return True

    def _apply_class(self, key: str, data: Any) -> bool:
        """Upsert one remote class; False when it is malformed or its course is not known locally"""
        if not isinstance(data, dict):
            logger.warning("Ignoring malformed class record %s", key)
            return False
        yoga_class = YogaClass.from_firebase(key, data)
        course = None
        if yoga_class.course_firebase_key:
            course = self.local_db.get_course_by_firebase_key(yoga_class.course_firebase_key)
        if course is None:
            logger.warning("Skipping class %s: course %s not found locally", key, yoga_class.course_firebase_key)
            return False
        yoga_class.course_id = course.id
        self.class_repository.upsert_from_sync(yoga_class)
        return True

    # ------------------------------------------------------------------
    # Realtime pull
    # ------------------------------------------------------------------

    def start_realtime_sync(self) -> bool:
        """Attach listeners on the courses and classes nodes, replacing any existing ones"""
        if self.remote_db is None:
            logger.warning("Realtime sync unavailable: not connected to Firebase")
            return False
        self.stop_realtime_sync()
        registrations = {}
        try:
            registrations[COURSES_NODE] = self.remote_db.listen(COURSES_NODE, self._on_courses_event)
            registrations[CLASSES_NODE] = self.remote_db.listen(CLASSES_NODE, self._on_classes_event)
        except RemoteStoreError as e:
            logger.error("Could not start realtime sync: %s", e)
            for registration in registrations.values():
                registration.close()
            return False
        with self._listeners_lock:
            self._listeners = registrations
        logger.info("Realtime sync started")
        return True

    def stop_realtime_sync(self) -> None:
        with self._listeners_lock:
            registrations, self._listeners = self._listeners, {}
        for node, registration in registrations.items():
            try:
                registration.close()
            except Exception:
                logger.exception("Error closing %s listener", node)
        if registrations:
            logger.info("Realtime sync stopped")

    def _on_courses_event(self, event) -> None:
        self._handle_event(event, COURSES_NODE, self._apply_course,
                           self.local_db.delete_course_by_firebase_key,
                           self.local_db.delete_courses_missing_remotely)

    def _on_classes_event(self, event) -> None:
        self._handle_event(event, CLASSES_NODE, self._apply_class,
                           self.local_db.delete_class_by_firebase_key,
                           self.local_db.delete_classes_missing_remotely)

    def _handle_event(self, event, node, apply, delete, prune) -> None:
        """
        Apply one listener event.

        A put at "/" carries the whole node: synced rows missing from it were
        removed remotely (all of them when the node itself is gone). A put at
        "/<key>" carries one record, None meaning it was removed. Deeper paths
        and patches only name what changed, so the affected records are read
        back.
        """
        try:
            path = (event.path or "/").strip("/")
            if event.event_type == "put" and not path:
                snapshot = event.data if isinstance(event.data, dict) else {}
                removed = prune(snapshot.keys())
                if removed:
                    logger.info("%d %s removed remotely, deleted locally", removed, node)
                for key, data in snapshot.items():
                    self._store(apply, node, key, data)
                self.last_sync = datetime.now()
                return

            if event.event_type == "put" and "/" not in path:
                changed = {path: event.data}
            else:
                keys = {path.split("/")[0]} if path else set()
                if event.event_type == "patch" and isinstance(event.data, dict) and not path:
                    keys = {relative.split("/")[0] for relative in event.data}
                changed = {key: self.remote_db.get_value(node, key) for key in keys if key}

            for key, data in changed.items():
                if data is None:
                    logger.info("Remote %s %s removed, deleting locally", node, key)
                    delete(key)
                else:
                    self._store(apply, node, key, data)
            self.last_sync = datetime.now()
        except (RemoteStoreError, LocalStoreError) as e:
            logger.error("Error applying %s change at %s: %s", node, event.path, e)

    # ------------------------------------------------------------------
    # Manual sync
    # ------------------------------------------------------------------

    def upload_all_data(self) -> Dict[str, int]:
        """Push every local course and class to Firebase, assigning keys to rows that have none"""
        counts = {"courses": 0, "classes": 0, "failed": 0}
        if self.remote_db is None:
            logger.warning("Upload skipped: not connected to Firebase")
            return counts

        logger.info("Uploading all local data to Firebase...")
        course_keys = {}
        for course in self.local_db.list_courses():
            if push_record(self.remote_db, COURSES_NODE, course, self.local_db.set_course_firebase_key):
                counts["courses"] += 1
            else:
                counts["failed"] += 1
            course_keys[course.id] = course.firebase_key

        for yoga_class in self.local_db.list_classes():
            parent_key = course_keys.get(yoga_class.course_id)
            if parent_key and yoga_class.course_firebase_key != parent_key:
                yoga_class.course_firebase_key = parent_key
                self.local_db.update_class(yoga_class)
            if push_record(self.remote_db, CLASSES_NODE, yoga_class, self.local_db.set_class_firebase_key):
                counts["classes"] += 1
            else:
                counts["failed"] += 1

        self.last_sync = datetime.now()
        logger.info("Upload complete: %d courses, %d classes, %d failed",
                    counts["courses"], counts["classes"], counts["failed"])
        return counts

    def get_sync_status(self) -> Dict[str, Any]:
        with self._listeners_lock:
            listening = sorted(self._listeners)
        return {
            "remote_connected": self.remote_db is not None,
            "initial_sync_complete": self.preferences.is_initial_sync_complete(),
            "initial_sync_running": self._sync_lock.locked(),
            "realtime_sync_active": bool(listening),
            "listening_nodes": listening,
            "last_sync": self.last_sync.isoformat() if self.last_sync else None,
        }
