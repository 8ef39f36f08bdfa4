# =============================================================================
# tests/unit/test_local_db.py
# Unit Tests for the SQLite store
# =============================================================================

import pytest

from yoga_admin.errors import LocalStoreError
from yoga_admin.local_db import CLASSES_TABLE, COURSES_TABLE


class TestCourses:
    def test_insert_and_get(self, local_db, make_course):
        course_id = local_db.insert_course(make_course())

        stored = local_db.get_course(course_id)
        assert stored.id == course_id
        assert stored.class_type == "Hatha"
        assert stored.firebase_key is None

    def test_upsert_matches_remote_key(self, local_db, make_course):
        first = local_db.upsert_course(make_course(firebase_key="-k1"))
        second = local_db.upsert_course(make_course(firebase_key="-k1", time="19:00"))

        assert first == second
        assert len(local_db.list_courses()) == 1
        assert local_db.get_course_by_firebase_key("-k1").time == "19:00"

    def test_remote_key_is_unique(self, local_db, make_course):
        local_db.insert_course(make_course(firebase_key="-dup"))

        with pytest.raises(LocalStoreError):
            local_db.insert_course(make_course(firebase_key="-dup"))

    def test_delete_cascades_to_classes(self, local_db, make_course, make_class):
        course_id = local_db.insert_course(make_course())
        course = local_db.get_course(course_id)
        local_db.insert_class(make_class(course))
        local_db.insert_class(make_class(course, date="08/01/2024"))

        local_db.delete_course(course_id)

        assert local_db.get_course(course_id) is None
        assert local_db.list_classes() == []

    def test_delete_missing_remotely_keeps_unsynced_rows(self, local_db, make_course, make_class):
        kept = local_db.insert_course(make_course(firebase_key="-keep"))
        gone = local_db.get_course(local_db.insert_course(make_course(firebase_key="-gone")))
        unsynced = local_db.insert_course(make_course())
        local_db.insert_class(make_class(gone, firebase_key="-c1"))

        removed = local_db.delete_courses_missing_remotely(["-keep"])

        assert removed == 1
        assert sorted(c.id for c in local_db.list_courses()) == sorted([kept, unsynced])
        assert local_db.list_classes() == []


class TestClasses:
    def test_class_requires_existing_course(self, local_db, make_course, make_class):
        orphan = make_class(make_course(id=404))

        with pytest.raises(LocalStoreError):
            local_db.insert_class(orphan)

    def test_ordering_by_date(self, local_db, make_course, make_class):
        course = local_db.get_course(local_db.insert_course(make_course()))
        for day in ("15/01/2024", "01/01/2024", "05/02/2023"):
            local_db.insert_class(make_class(course, date=day))

        ascending = [c.date for c in local_db.list_classes_for_course(course.id)]
        descending = [c.date for c in local_db.list_classes()]

        assert ascending == ["05/02/2023", "01/01/2024", "15/01/2024"]
        assert descending == list(reversed(ascending))

    def test_count_classes(self, local_db, make_course, make_class):
        course = local_db.get_course(local_db.insert_course(make_course()))
        local_db.insert_class(make_class(course))

        assert local_db.count_classes(course.id, "01/01/2024") == 1
        assert local_db.count_classes(course.id, "08/01/2024") == 0

    def test_delete_by_remote_key(self, local_db, make_course, make_class):
        course = local_db.get_course(local_db.insert_course(make_course()))
        local_db.insert_class(make_class(course, firebase_key="-c1"))

        local_db.delete_class_by_firebase_key("-c1")

        assert local_db.get_class_by_firebase_key("-c1") is None

    def test_delete_missing_remotely_with_empty_snapshot(self, local_db, make_course, make_class):
        course = local_db.get_course(local_db.insert_course(make_course()))
        local_db.insert_class(make_class(course, firebase_key="-c1"))
        local_db.insert_class(make_class(course, date="08/01/2024"))

        assert local_db.delete_classes_missing_remotely([]) == 1
        assert [c.firebase_key for c in local_db.list_classes()] == [None]


class TestSearch:
    @pytest.fixture
    def populated(self, local_db, make_course, make_class):
        monday = local_db.get_course(local_db.insert_course(make_course()))
        friday = local_db.get_course(local_db.insert_course(make_course(day_of_week="Friday", class_type="Yin")))
        local_db.insert_class(make_class(monday, assigned_instructor="Anna Smith"))
        local_db.insert_class(make_class(monday, date="08/01/2024", assigned_instructor="Ben"))
        local_db.insert_class(make_class(friday, date="05/01/2024", assigned_instructor="Anna"))
        return local_db

    def test_no_filters_returns_all(self, populated):
        assert len(populated.search_classes()) == 3

    def test_all_days_is_no_filter(self, populated):
        assert len(populated.search_classes("", " ", "All Days")) == 3

    def test_instructor_substring(self, populated):
        results = populated.search_classes(instructor="Anna")

        assert sorted(r.yoga_class.assigned_instructor for r in results) == ["Anna", "Anna Smith"]

    def test_filters_are_combined(self, populated):
        results = populated.search_classes(instructor="anna", day_of_week="Friday")

        assert len(results) == 1
        assert results[0].course.class_type == "Yin"
        assert results[0].display_name == "Yin - 05/01/2024"

    def test_exact_date(self, populated):
        results = populated.search_classes(date="08/01/2024")

        assert [r.yoga_class.assigned_instructor for r in results] == ["Ben"]

    def test_wildcards_are_literal(self, populated):
        assert populated.search_classes(instructor="%") == []


class TestChangeNotification:
    def test_listener_receives_tables(self, local_db, make_course):
        seen = []
        local_db.add_change_listener(seen.append)

        local_db.insert_course(make_course())
        local_db.delete_all_courses()

        assert seen == [frozenset({COURSES_TABLE}), frozenset({COURSES_TABLE, CLASSES_TABLE})]

    def test_removed_listener_is_silent(self, local_db, make_course):
        seen = []
        remove = local_db.add_change_listener(seen.append)
        remove()

        local_db.insert_course(make_course())

        assert seen == []

    def test_failed_write_does_not_notify(self, local_db, make_course):
        local_db.insert_course(make_course(firebase_key="-dup"))
        seen = []
        local_db.add_change_listener(seen.append)

        with pytest.raises(LocalStoreError):
            local_db.insert_course(make_course(firebase_key="-dup"))

        assert seen == []


class TestWriteThreads:
    def test_only_executor_workers_count(self, local_db, tmp_path):
        from yoga_admin.local_db import LocalDatabase

        other = LocalDatabase(tmp_path / "other.db", worker_threads=1)
        try:
            assert not local_db.is_write_thread()
            assert local_db.executor.submit(local_db.is_write_thread).result(timeout=5)
            assert not other.executor.submit(local_db.is_write_thread).result(timeout=5)
        finally:
            other.close()
