"""
Course repository.

Reads come from the local store as live queries. Writes commit locally and
then propagate to the courses node; deleting a course also clears its classes
and their bookings from Firebase, since the cascade only happens locally.
"""

import logging
from concurrent.futures import Future
from dataclasses import replace
from typing import List, Optional

from yoga_admin.booking_repository import remove_bookings_for_class
from yoga_admin.errors import LocalStoreError, RemoteStoreError
from yoga_admin.firebase_db import BOOKINGS_NODE, CLASSES_NODE, COURSES_NODE
from yoga_admin.live_data import LiveQuery
from yoga_admin.local_db import COURSES_TABLE
from yoga_admin.models import Course
from yoga_admin.write_through import WriteResult, push_record, remove_remote, submit_write

logger = logging.getLogger(__name__)


class CourseRepository:
    def __init__(self, local_db, remote_db, dispatcher):
        self.local_db = local_db
        self.remote_db = remote_db
        self.dispatcher = dispatcher

    # Reads

    def get_all(self) -> LiveQuery:
        return LiveQuery(self.local_db, [COURSES_TABLE], self.local_db.list_courses, self.dispatcher)

    def get_by_id(self, course_id: int) -> LiveQuery:
        return LiveQuery(self.local_db, [COURSES_TABLE],
                         lambda: self.local_db.get_course(course_id), self.dispatcher)

    def list_courses(self) -> List[Course]:
        return self.local_db.list_courses()

    def get_by_firebase_key(self, firebase_key: str) -> Optional[Course]:
        return self.local_db.get_course_by_firebase_key(firebase_key)

    # Writes

    def _push(self, course: Course) -> bool:
        return push_record(self.remote_db, COURSES_NODE, course, self.local_db.set_course_firebase_key)

    def insert(self, course: Course) -> Future:
        """Save a new course locally, then give it a remote key and upload it"""

        def work():
            course.validate()
            record = replace(course, id=None, firebase_key=None)
            record.id = self.local_db.insert_course(record)
            logger.info("Inserted course %s (%s)", record.id, record.display_name)
            synced = self._push(record)
            return WriteResult(True, "Course saved", record, synced)

        return submit_write(self.local_db.executor, "Insert course", work)

    def update(self, course: Course) -> Future:
        def work():
            if course.id is None:
                return WriteResult(False, "Course has not been saved yet")
            course.validate()
            record = replace(course)
            self.local_db.update_course(record)
            synced = self._push(record)
            return WriteResult(True, "Course updated", record, synced)

        return submit_write(self.local_db.executor, "Update course", work)

    def delete(self, course: Course) -> Future:
        """
        Delete a course with its classes.

        The local cascade removes the class rows; Firebase has no cascade, so
        each synced class node, the bookings pointing at it and finally the
        course node are removed one by one.
        """

        def work():
            classes = self.local_db.list_classes_for_course(course.id)
            self.local_db.delete_course(course.id)
            logger.info("Deleted course %s and %d classes locally", course.id, len(classes))

            if self.remote_db is None:
                return WriteResult(True, "Course deleted", course, False)

            synced = True
            for yoga_class in classes:
                if not yoga_class.firebase_key:
                    continue
                synced = remove_remote(self.remote_db, CLASSES_NODE, yoga_class.firebase_key) and synced
                try:
                    remove_bookings_for_class(self.remote_db, yoga_class.firebase_key)
                except RemoteStoreError:
                    logger.exception("Could not remove bookings for class %s", yoga_class.firebase_key)
                    synced = False
            synced = remove_remote(self.remote_db, COURSES_NODE, course.firebase_key) and synced
            return WriteResult(True, "Course deleted", course, synced)

        return submit_write(self.local_db.executor, "Delete course", work)

    def delete_all(self) -> Future:
        """Wipe every course and class locally and the three yoga nodes remotely"""

        def work():
            self.local_db.delete_all_courses()
            logger.info("Deleted all courses locally")
            if self.remote_db is None:
                return WriteResult(True, "All courses deleted", None, False)
            try:
                for node in (COURSES_NODE, CLASSES_NODE, BOOKINGS_NODE):
                    self.remote_db.remove_node(node)
            except RemoteStoreError:
                logger.exception("Could not clear remote data")
                return WriteResult(True, "All courses deleted", None, False)
            return WriteResult(True, "All courses deleted", None, True)

        return submit_write(self.local_db.executor, "Delete all courses", work)

    def upsert_from_sync(self, course: Course) -> int:
        """Store a course received from Firebase, matched by its remote key. Runs on the calling thread."""
        if not course.firebase_key:
            raise LocalStoreError("Synced course has no remote key")
        return self.local_db.upsert_course(replace(course, id=None))
