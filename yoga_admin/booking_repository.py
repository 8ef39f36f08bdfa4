"""
Bookings and member accounts.

Both live only in Firebase: members book from their own app and the admin
side reads them, or removes bookings when the class they point at goes away.
"""

import logging
from typing import List, Optional

from yoga_admin.errors import RemoteStoreError
from yoga_admin.firebase_db import BOOKINGS_NODE, USERS_NODE
from yoga_admin.live_data import RemoteLiveQuery
from yoga_admin.models import Booking, User
from yoga_admin.write_through import WriteResult

logger = logging.getLogger(__name__)


def remove_bookings_for_class(remote_db, class_key: str) -> int:
    """Delete every booking whose classId is class_key; returns how many were removed"""
    bookings = remote_db.query_equal_to(BOOKINGS_NODE, "classId", class_key)
    if not bookings:
        return 0
    remote_db.update_children({f"{BOOKINGS_NODE}/{key}": None for key in bookings})
    return len(bookings)


class BookingRepository:
    """Remote-only access to the bookings node."""

    def __init__(self, remote_db, dispatcher):
        self.remote_db = remote_db
        self.dispatcher = dispatcher

    def _load_for_class(self, class_key: str) -> List[Booking]:
        if self.remote_db is None:
            return []
        records = self.remote_db.query_equal_to(BOOKINGS_NODE, "classId", class_key)
        bookings = [
            Booking.from_firebase(key, data)
            for key, data in records.items()
            if isinstance(data, dict)
        ]
        bookings.sort(key=lambda booking: booking.booking_date)
        return bookings

    def get_for_class(self, class_key: str) -> List[Booking]:
        """Bookings of one class, oldest first. A failed read yields an empty list."""
        try:
            return self._load_for_class(class_key)
        except RemoteStoreError:
            logger.exception("Could not load bookings for class %s", class_key)
            return []

    def watch_for_class(self, class_key: str) -> RemoteLiveQuery:
        return RemoteLiveQuery(self.remote_db, BOOKINGS_NODE,
                               lambda: self._load_for_class(class_key), self.dispatcher)

    def delete_for_class(self, class_key: str) -> WriteResult:
        if self.remote_db is None:
            return WriteResult(False, "Not connected to Firebase")
        try:
            removed = remove_bookings_for_class(self.remote_db, class_key)
        except RemoteStoreError as e:
            logger.exception("Could not remove bookings for class %s", class_key)
            return WriteResult(False, str(e))
        logger.info("Removed %d bookings for class %s", removed, class_key)
        return WriteResult(True, f"Removed {removed} bookings", removed, True)


class UserRepository:
    """Read-only view of member profiles."""

    def __init__(self, remote_db):
        self.remote_db = remote_db

    def get_all(self) -> List[User]:
        if self.remote_db is None:
            return []
        try:
            records = self.remote_db.get_children(USERS_NODE)
        except RemoteStoreError:
            logger.exception("Could not load users")
            return []
        return [User.from_firebase(uid, data) for uid, data in records.items() if isinstance(data, dict)]

    def get_by_uid(self, uid: str) -> Optional[User]:
        if self.remote_db is None:
            return None
        try:
            data = self.remote_db.get_value(USERS_NODE, uid)
        except RemoteStoreError:
            logger.exception("Could not load user %s", uid)
            return None
        return User.from_firebase(uid, data) if isinstance(data, dict) else None
