"""
Composition root.

Builds one instance of every store, repository and service from the
application config and wires the initial import to the connectivity monitor.
When Firebase cannot be reached at startup the app runs in local-only mode.
"""

import logging
import threading
from typing import Any, Dict, Optional

from yoga_admin.app_config import load_app_config
from yoga_admin.booking_repository import BookingRepository, UserRepository
from yoga_admin.class_repository import ClassRepository
from yoga_admin.course_repository import CourseRepository
from yoga_admin.errors import RemoteStoreError, SyncInProgressError
from yoga_admin.firebase_db import FirebaseDatabase
from yoga_admin.live_data import Dispatcher
from yoga_admin.local_db import LocalDatabase
from yoga_admin.network_monitor import NetworkMonitor
from yoga_admin.preferences import PreferencesManager
from yoga_admin.scheduling import ClassScheduler
from yoga_admin.sync_manager import FirebaseSyncManager

logger = logging.getLogger(__name__)


def connect_remote(config: Dict[str, Any]) -> Optional[FirebaseDatabase]:
    """Connect to Firebase, or return None to run local-only"""
    if not config.get("database_url"):
        logger.warning("No database_url configured, running in local-only mode")
        return None
    try:
        return FirebaseDatabase(
            config["database_url"],
            credentials_file=config.get("credentials_file"),
            http_timeout=config.get("http_timeout_seconds"),
        )
    except RemoteStoreError as e:
        logger.warning("Could not connect to Firebase: %s", e)
        logger.warning("Running in local-only mode")
        return None


class YogaAdminApp:
    def __init__(self, config: Optional[Dict[str, Any]] = None, local_db=None, remote_db=None,
                 preferences=None, network_monitor=None, connect: bool = True):
        self.config = config or load_app_config()

        self.local_db = local_db or LocalDatabase(
            self.config["local_db_path"], worker_threads=self.config["worker_threads"]
        )
        if remote_db is None and connect:
            remote_db = connect_remote(self.config)
        self.remote_db = remote_db
        self.preferences = preferences or PreferencesManager(self.config["preferences_path"])
        self.dispatcher = Dispatcher()

        self.courses = CourseRepository(self.local_db, self.remote_db, self.dispatcher)
        self.classes = ClassRepository(self.local_db, self.remote_db, self.dispatcher)
        self.bookings = BookingRepository(self.remote_db, self.dispatcher)
        self.users = UserRepository(self.remote_db)
        self.scheduler = ClassScheduler(self.classes)
        self.sync_manager = FirebaseSyncManager(
            self.local_db, self.remote_db, self.courses, self.classes, self.preferences
        )
        self.network_monitor = network_monitor or NetworkMonitor(self.config["connectivity_check_interval"])
        self.network_monitor.add_online_callback(self.on_online)
        self._cancel_sync = threading.Event()

    def on_online(self) -> None:
        """Run the initial import if it is still pending, then follow remote changes"""
        if self.remote_db is None:
            return
        try:
            report = self.sync_manager.perform_initial_sync(self._cancel_sync)
        except SyncInProgressError:
            logger.info("Initial sync already running, ignoring connectivity change")
            return
        logger.info(report.summary())
        if report.completed or report.already_complete:
            if not self.sync_manager.get_sync_status()["realtime_sync_active"]:
                self.sync_manager.start_realtime_sync()

    def start(self) -> None:
        logger.info("Starting yoga admin backend")
        self.network_monitor.start()

    def shutdown(self) -> None:
        logger.info("Shutting down yoga admin backend")
        self._cancel_sync.set()
        self.network_monitor.stop()
        self.sync_manager.stop_realtime_sync()
        self.local_db.close()
        self.dispatcher.shutdown()
