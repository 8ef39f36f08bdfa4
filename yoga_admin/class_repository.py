"""
Class repository.

Same write-through contract as courses. Every class carries the remote key
of its course so the member app, and a later import, can find the parent.
"""

import logging
from concurrent.futures import Future
from dataclasses import replace
from typing import List, Optional

from yoga_admin.booking_repository import remove_bookings_for_class
from yoga_admin.errors import LocalStoreError, RemoteStoreError
from yoga_admin.firebase_db import CLASSES_NODE
from yoga_admin.live_data import LiveQuery
from yoga_admin.local_db import CLASSES_TABLE, COURSES_TABLE
from yoga_admin.models import YogaClass
from yoga_admin.write_through import WriteResult, push_record, remove_remote, submit_write

logger = logging.getLogger(__name__)


class ClassRepository:
    def __init__(self, local_db, remote_db, dispatcher):
        self.local_db = local_db
        self.remote_db = remote_db
        self.dispatcher = dispatcher

    def _live(self, loader, *tables) -> LiveQuery:
        return LiveQuery(self.local_db, tables or [CLASSES_TABLE], loader, self.dispatcher)

    # Reads

    def get_all(self) -> LiveQuery:
        return self._live(self.local_db.list_classes)

    def get_for_course(self, course_id: int) -> LiveQuery:
        return self._live(lambda: self.local_db.list_classes_for_course(course_id))

    def get_by_id(self, class_id: int) -> LiveQuery:
        return self._live(lambda: self.local_db.get_class(class_id))

    def list_for_course(self, course_id: int) -> List[YogaClass]:
        return self.local_db.list_classes_for_course(course_id)

    def get_by_firebase_key(self, firebase_key: str) -> Optional[YogaClass]:
        return self.local_db.get_class_by_firebase_key(firebase_key)

    def search(self, instructor: Optional[str] = None, date: Optional[str] = None,
               day_of_week: Optional[str] = None) -> LiveQuery:
        """Classes matching every filter given; blank filters and "All Days" match everything"""
        return self._live(
            lambda: self.local_db.search_classes(instructor, date, day_of_week),
            CLASSES_TABLE, COURSES_TABLE,
        )

    def exists_for_course_on_date(self, course_id: int, date: str) -> bool:
        """Blocking check used before creating classes; raises LocalStoreError if the query fails"""
        if self.local_db.is_write_thread():
            return self.local_db.count_classes(course_id, date) > 0
        future = self.local_db.executor.submit(self.local_db.count_classes, course_id, date)
        return future.result() > 0

    # Writes

    def _push(self, yoga_class: YogaClass) -> bool:
        return push_record(self.remote_db, CLASSES_NODE, yoga_class, self.local_db.set_class_firebase_key)

    def _with_parent_key(self, yoga_class: YogaClass) -> YogaClass:
        record = replace(yoga_class, slots_available=yoga_class.clamped_slots())
        if not record.course_firebase_key:
            course = self.local_db.get_course(record.course_id)
            if course:
                record.course_firebase_key = course.firebase_key
        return record

    def _remove_remote_class(self, firebase_key: Optional[str]) -> bool:
        if not firebase_key:
            return True
        if self.remote_db is None:
            return False
        synced = remove_remote(self.remote_db, CLASSES_NODE, firebase_key)
        try:
            remove_bookings_for_class(self.remote_db, firebase_key)
        except RemoteStoreError:
            logger.exception("Could not remove bookings for class %s", firebase_key)
            return False
        return synced

    def insert(self, yoga_class: YogaClass) -> Future:
        def work():
            record = self._with_parent_key(replace(yoga_class, id=None, firebase_key=None))
            record.id = self.local_db.insert_class(record)
            logger.info("Inserted class %s on %s for course %s", record.id, record.date, record.course_id)
            synced = self._push(record)
            return WriteResult(True, "Class saved", record, synced)

        return submit_write(self.local_db.executor, "Insert class", work)

    def update(self, yoga_class: YogaClass) -> Future:
        def work():
            if yoga_class.id is None:
                return WriteResult(False, "Class has not been saved yet")
            record = self._with_parent_key(yoga_class)
            self.local_db.update_class(record)
            synced = self._push(record)
            return WriteResult(True, "Class updated", record, synced)

        return submit_write(self.local_db.executor, "Update class", work)

    def delete(self, yoga_class: YogaClass) -> Future:
        def work():
            self.local_db.delete_class(yoga_class.id)
            logger.info("Deleted class %s", yoga_class.id)
            synced = self._remove_remote_class(yoga_class.firebase_key)
            return WriteResult(True, "Class deleted", yoga_class, synced)

        return submit_write(self.local_db.executor, "Delete class", work)

    def delete_for_course(self, course_id: int) -> Future:
        def work():
            classes = self.local_db.list_classes_for_course(course_id)
            self.local_db.delete_classes_for_course(course_id)
            logger.info("Deleted %d classes of course %s", len(classes), course_id)
            synced = True
            for yoga_class in classes:
                synced = self._remove_remote_class(yoga_class.firebase_key) and synced
            return WriteResult(True, f"Deleted {len(classes)} classes", classes, synced)

        return submit_write(self.local_db.executor, "Delete classes for course", work)

    def upsert_from_sync(self, yoga_class: YogaClass) -> int:
        """Store a class received from Firebase; course_id must already be resolved locally"""
        if not yoga_class.firebase_key:
            raise LocalStoreError("Synced class has no remote key")
        if yoga_class.course_id is None:
            raise LocalStoreError(f"Synced class {yoga_class.firebase_key} has no local course")
        return self.local_db.upsert_class(replace(yoga_class, id=None))
