# =============================================================================
# tests/conftest.py
# Pytest Configuration and Fixtures
# =============================================================================

import itertools
import threading
from collections import namedtuple

import pytest

from yoga_admin.errors import RemoteStoreError


FakeEvent = namedtuple("FakeEvent", ["event_type", "path", "data"])


# =============================================================================
# IN-MEMORY FIREBASE
# =============================================================================

class FakeRegistration:
    def __init__(self, remote, node, callback):
        self.remote = remote
        self.node = node
        self.callback = callback
        self.closed = False

    def close(self):
        self.closed = True
        self.remote.registrations.remove(self)


class FakeFirebaseDatabase:
    """Same interface as FirebaseDatabase, backed by a dict of nodes"""

    def __init__(self):
        self.data = {}
        self.registrations = []
        self.failing = set()
        self.calls = []
        self._keys = itertools.count(1)
        self._lock = threading.Lock()

    def _check(self, operation, *args):
        self.calls.append((operation,) + args)
        if operation in self.failing:
            raise RemoteStoreError(f"{operation} failed")

    def new_key(self, node):
        self._check("new_key", node)
        return f"-{node}{next(self._keys):04d}"

    def set_value(self, node, key, data):
        self._check("set_value", node, key)
        with self._lock:
            self.data.setdefault(node, {})[key] = dict(data)

    def get_value(self, node, key):
        self._check("get_value", node, key)
        return self.data.get(node, {}).get(key)

    def get_children(self, node):
        self._check("get_children", node)
        return dict(self.data.get(node, {}))

    def remove_value(self, node, key):
        self._check("remove_value", node, key)
        with self._lock:
            self.data.get(node, {}).pop(key, None)

    def remove_node(self, node):
        self._check("remove_node", node)
        self.data.pop(node, None)

    def update_children(self, updates):
        self._check("update_children")
        with self._lock:
            for path, value in updates.items():
                node, key = path.split("/", 1)
                if value is None:
                    self.data.get(node, {}).pop(key, None)
                else:
                    self.data.setdefault(node, {})[key] = value

    def query_equal_to(self, node, child, value):
        self._check("query_equal_to", node, child)
        return {
            key: record for key, record in self.data.get(node, {}).items()
            if isinstance(record, dict) and record.get(child) == value
        }

    def listen(self, node, callback):
        self._check("listen", node)
        registration = FakeRegistration(self, node, callback)
        self.registrations.append(registration)
        return registration

    def emit(self, node, event_type, path, data):
        """Deliver a listener event the way the SDK would"""
        for registration in list(self.registrations):
            if registration.node == node:
                registration.callback(FakeEvent(event_type, path, data))


# =============================================================================
# STORE FIXTURES
# =============================================================================

@pytest.fixture
def local_db(tmp_path):
    from yoga_admin.local_db import LocalDatabase

    db = LocalDatabase(tmp_path / "yoga_test.db", worker_threads=2)
    yield db
    db.close()


@pytest.fixture
def remote():
    return FakeFirebaseDatabase()


@pytest.fixture
def dispatcher():
    from yoga_admin.live_data import Dispatcher

    d = Dispatcher()
    yield d
    d.shutdown()


@pytest.fixture
def preferences(tmp_path):
    from yoga_admin.preferences import PreferencesManager

    return PreferencesManager(str(tmp_path / "prefs.json"))


@pytest.fixture
def course_repo(local_db, remote, dispatcher):
    from yoga_admin.course_repository import CourseRepository

    return CourseRepository(local_db, remote, dispatcher)


@pytest.fixture
def class_repo(local_db, remote, dispatcher):
    from yoga_admin.class_repository import ClassRepository

    return ClassRepository(local_db, remote, dispatcher)


# =============================================================================
# SAMPLE DATA FIXTURES
# =============================================================================

@pytest.fixture
def make_course():
    """Factory for a Monday evening Hatha course"""
    from yoga_admin.models import Course

    def factory(**overrides):
        values = dict(
            day_of_week="Monday",
            time="18:00",
            capacity=20,
            duration=60,
            price=12.50,
            class_type="Hatha",
            instructor_name="Anna",
        )
        values.update(overrides)
        return Course(**values)

    return factory


@pytest.fixture
def saved_course(course_repo, make_course):
    """A course committed locally and pushed to the fake remote"""
    result = course_repo.insert(make_course()).result(timeout=5)
    assert result.success
    return result.record


@pytest.fixture
def make_class():
    from yoga_admin.models import YogaClass

    def factory(course, **overrides):
        values = dict(
            course_id=course.id,
            date="01/01/2024",
            assigned_instructor="Anna",
            actual_capacity=course.capacity,
            slots_available=course.capacity,
        )
        values.update(overrides)
        return YogaClass(**values)

    return factory


# =============================================================================
# ASYNC HELPERS
# =============================================================================

@pytest.fixture
def wait_until():
    """Poll a condition until it holds; deliveries happen on background threads"""
    import time

    def waiter(condition, timeout=5.0):
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if condition():
                return True
            time.sleep(0.01)
        return condition()

    return waiter
