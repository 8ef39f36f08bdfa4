"""
Local SQLite Database

On-device store for courses and classes. It owns the integer identifiers,
keeps the remote key of every synced row, and runs all writes on a bounded
thread pool shared by the repositories.

- Thread-local connections with foreign keys enabled (deleting a course
  cascades to its classes)
- Listeners are told which tables changed after every committed write
- sqlite3 errors surface as LocalStoreError
"""

import logging
import sqlite3
import threading
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Union

from yoga_admin.errors import LocalStoreError
from yoga_admin.models import ALL_DAYS, ClassWithCourse, Course, YogaClass

logger = logging.getLogger(__name__)

COURSES_TABLE = "yoga_courses"
CLASSES_TABLE = "yoga_classes"

DEFAULT_WORKER_THREADS = 4
WRITE_THREAD_PREFIX = "db-write"

SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS yoga_courses (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        firebase_key TEXT,
        day_of_week TEXT NOT NULL,
        time TEXT NOT NULL,
        capacity INTEGER NOT NULL,
        duration INTEGER NOT NULL,
        price REAL NOT NULL,
        class_type TEXT NOT NULL,
        description TEXT,
        instructor_name TEXT,
        room_number TEXT,
        difficulty_level TEXT,
        equipment_needed TEXT,
        age_group TEXT,
        created_date INTEGER
    )
    """,
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_courses_firebase_key ON yoga_courses(firebase_key)",
    """
    CREATE TABLE IF NOT EXISTS yoga_classes (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        firebase_key TEXT,
        course_firebase_key TEXT,
        course_id INTEGER NOT NULL REFERENCES yoga_courses(id) ON DELETE CASCADE,
        date TEXT NOT NULL,
        assigned_instructor TEXT,
        actual_capacity INTEGER NOT NULL DEFAULT 0,
        slots_available INTEGER NOT NULL DEFAULT 0,
        additional_comments TEXT,
        status TEXT,
        created_date INTEGER,
        CHECK (slots_available <= actual_capacity)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_classes_course_id ON yoga_classes(course_id)",
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_classes_firebase_key ON yoga_classes(firebase_key)",
]

# dd/MM/yyyy sorts chronologically by year, month, day substrings
CLASS_DATE_ORDER = "SUBSTR(date, 7, 4) {0}, SUBSTR(date, 4, 2) {0}, SUBSTR(date, 1, 2) {0}"


def _like_pattern(text: str) -> str:
    """Wrap user text for a substring LIKE match, escaping wildcards"""
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class LocalDatabase:
    """SQLite store for courses and classes; one instance per process, passed to each repository."""

    def __init__(self, db_path: Union[str, Path] = "yoga_database.db",
                 worker_threads: int = DEFAULT_WORKER_THREADS):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._local = threading.local()
        self._connections: List[sqlite3.Connection] = []
        self._connections_lock = threading.Lock()
        self._listeners: List[Callable[[frozenset], None]] = []
        self._listeners_lock = threading.Lock()
        self._worker_state = threading.local()
        self.executor = ThreadPoolExecutor(max_workers=worker_threads, thread_name_prefix=WRITE_THREAD_PREFIX,
                                           initializer=self._mark_write_thread)
        self._closed = False
        self.initialize()

    def _mark_write_thread(self) -> None:
        self._worker_state.is_writer = True

    def is_write_thread(self) -> bool:
        """True on one of this store's executor workers, where blocking on the executor would deadlock"""
        return getattr(self._worker_state, "is_writer", False)

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        conn = getattr(self._local, "connection", None)
        if conn is None:
            conn = sqlite3.connect(str(self.db_path), check_same_thread=False, timeout=30)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            self._local.connection = conn
            with self._connections_lock:
                self._connections.append(conn)
        return conn

    @contextmanager
    def transaction(self):
        """Context manager for database transactions."""
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    @contextmanager
    def _write(self, *tables: str):
        """Run a write transaction and notify listeners once it has committed"""
        try:
            with self.transaction() as conn:
                yield conn
        except sqlite3.Error as e:
            raise LocalStoreError(str(e)) from e
        self._notify(frozenset(tables))

    def _query(self, sql: str, params: Iterable = ()) -> List[sqlite3.Row]:
        try:
            return self._get_connection().execute(sql, tuple(params)).fetchall()
        except sqlite3.Error as e:
            raise LocalStoreError(str(e)) from e

    def _prune(self, table: str, keep: Iterable[str], *tables: str) -> int:
        keep = set(keep)
        with self._write(*tables) as conn:
            rows = conn.execute(f"SELECT firebase_key FROM {table} WHERE firebase_key IS NOT NULL").fetchall()
            stale = [(row["firebase_key"],) for row in rows if row["firebase_key"] not in keep]
            conn.executemany(f"DELETE FROM {table} WHERE firebase_key = ?", stale)
        return len(stale)

    def initialize(self) -> None:
        """Create tables and indexes if they do not exist yet"""
        with self._write():
            for statement in SCHEMA:
                self._get_connection().execute(statement)
        logger.info("Local database initialized at %s", self.db_path)

    # ------------------------------------------------------------------
    # Change notification
    # ------------------------------------------------------------------

    def add_change_listener(self, listener: Callable[[frozenset], None]) -> Callable[[], None]:
        """Register a callback receiving the set of changed table names. Returns a function that unregisters it."""
        with self._listeners_lock:
            self._listeners.append(listener)

        def remove():
            with self._listeners_lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return remove

    def _notify(self, tables: frozenset) -> None:
        if not tables:
            return
        with self._listeners_lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(tables)
            except Exception:
                logger.exception("Change listener failed for tables %s", sorted(tables))

    # ------------------------------------------------------------------
    # Courses
    # ------------------------------------------------------------------

    def insert_course(self, course: Course) -> int:
        row = course.to_row()
        columns = ", ".join(row.keys())
        placeholders = ", ".join("?" for _ in row)
        with self._write(COURSES_TABLE) as conn:
            cursor = conn.execute(
                f"INSERT INTO yoga_courses ({columns}) VALUES ({placeholders})",
                tuple(row.values()),
            )
            return cursor.lastrowid

    def update_course(self, course: Course) -> None:
        row = course.to_row()
        assignments = ", ".join(f"{column} = ?" for column in row)
        with self._write(COURSES_TABLE) as conn:
            conn.execute(
                f"UPDATE yoga_courses SET {assignments} WHERE id = ?",
                tuple(row.values()) + (course.id,),
            )

    def set_course_firebase_key(self, course_id: int, firebase_key: Optional[str]) -> None:
        with self._write(COURSES_TABLE) as conn:
            conn.execute("UPDATE yoga_courses SET firebase_key = ? WHERE id = ?", (firebase_key, course_id))

    def upsert_course(self, course: Course) -> int:
        """Insert or update a course matched by its remote key; returns the local id"""
        row = course.to_row()
        with self._write(COURSES_TABLE) as conn:
            existing = conn.execute(
                "SELECT id FROM yoga_courses WHERE firebase_key = ?", (course.firebase_key,)
            ).fetchone()
            if existing:
                assignments = ", ".join(f"{column} = ?" for column in row)
                conn.execute(
                    f"UPDATE yoga_courses SET {assignments} WHERE id = ?",
                    tuple(row.values()) + (existing["id"],),
                )
                return existing["id"]
            columns = ", ".join(row.keys())
            placeholders = ", ".join("?" for _ in row)
            cursor = conn.execute(
                f"INSERT INTO yoga_courses ({columns}) VALUES ({placeholders})",
                tuple(row.values()),
            )
            return cursor.lastrowid

    def delete_course(self, course_id: int) -> None:
        """Delete a course; its classes go with it through the cascade"""
        with self._write(COURSES_TABLE, CLASSES_TABLE) as conn:
            conn.execute("DELETE FROM yoga_courses WHERE id = ?", (course_id,))

    def delete_course_by_firebase_key(self, firebase_key: str) -> None:
        with self._write(COURSES_TABLE, CLASSES_TABLE) as conn:
            conn.execute("DELETE FROM yoga_courses WHERE firebase_key = ?", (firebase_key,))

    def delete_courses_missing_remotely(self, firebase_keys: Iterable[str]) -> int:
        """Delete synced courses whose key is not in firebase_keys. Courses never pushed are kept."""
        return self._prune(COURSES_TABLE, firebase_keys, COURSES_TABLE, CLASSES_TABLE)

    def delete_all_courses(self) -> None:
        with self._write(COURSES_TABLE, CLASSES_TABLE) as conn:
            conn.execute("DELETE FROM yoga_courses")

    def get_course(self, course_id: int) -> Optional[Course]:
        rows = self._query("SELECT * FROM yoga_courses WHERE id = ?", (course_id,))
        return Course.from_row(rows[0]) if rows else None

    def get_course_by_firebase_key(self, firebase_key: str) -> Optional[Course]:
        rows = self._query("SELECT * FROM yoga_courses WHERE firebase_key = ?", (firebase_key,))
        return Course.from_row(rows[0]) if rows else None

    def list_courses(self) -> List[Course]:
        rows = self._query("SELECT * FROM yoga_courses ORDER BY day_of_week, time ASC")
        return [Course.from_row(row) for row in rows]

    # ------------------------------------------------------------------
    # Classes
    # ------------------------------------------------------------------

    def insert_class(self, yoga_class: YogaClass) -> int:
        row = yoga_class.to_row()
        columns = ", ".join(row.keys())
        placeholders = ", ".join("?" for _ in row)
        with self._write(CLASSES_TABLE) as conn:
            cursor = conn.execute(
                f"INSERT INTO yoga_classes ({columns}) VALUES ({placeholders})",
                tuple(row.values()),
            )
            return cursor.lastrowid

    def update_class(self, yoga_class: YogaClass) -> None:
        row = yoga_class.to_row()
        assignments = ", ".join(f"{column} = ?" for column in row)
        with self._write(CLASSES_TABLE) as conn:
            conn.execute(
                f"UPDATE yoga_classes SET {assignments} WHERE id = ?",
                tuple(row.values()) + (yoga_class.id,),
            )

    def set_class_firebase_key(self, class_id: int, firebase_key: Optional[str]) -> None:
        with self._write(CLASSES_TABLE) as conn:
            conn.execute("UPDATE yoga_classes SET firebase_key = ? WHERE id = ?", (firebase_key, class_id))

    def upsert_class(self, yoga_class: YogaClass) -> int:
        """Insert or update a class matched by its remote key; returns the local id"""
        row = yoga_class.to_row()
        with self._write(CLASSES_TABLE) as conn:
            existing = conn.execute(
                "SELECT id FROM yoga_classes WHERE firebase_key = ?", (yoga_class.firebase_key,)
            ).fetchone()
            if existing:
                assignments = ", ".join(f"{column} = ?" for column in row)
                conn.execute(
                    f"UPDATE yoga_classes SET {assignments} WHERE id = ?",
                    tuple(row.values()) + (existing["id"],),
                )
                return existing["id"]
            columns = ", ".join(row.keys())
            placeholders = ", ".join("?" for _ in row)
            cursor = conn.execute(
                f"INSERT INTO yoga_classes ({columns}) VALUES ({placeholders})",
                tuple(row.values()),
            )
            return cursor.lastrowid

    def delete_class(self, class_id: int) -> None:
        with self._write(CLASSES_TABLE) as conn:
            conn.execute("DELETE FROM yoga_classes WHERE id = ?", (class_id,))

    def delete_class_by_firebase_key(self, firebase_key: str) -> None:
        with self._write(CLASSES_TABLE) as conn:
            conn.execute("DELETE FROM yoga_classes WHERE firebase_key = ?", (firebase_key,))

    def delete_classes_missing_remotely(self, firebase_keys: Iterable[str]) -> int:
        return self._prune(CLASSES_TABLE, firebase_keys, CLASSES_TABLE)

    def delete_classes_for_course(self, course_id: int) -> None:
        with self._write(CLASSES_TABLE) as conn:
            conn.execute("DELETE FROM yoga_classes WHERE course_id = ?", (course_id,))

    def get_class(self, class_id: int) -> Optional[YogaClass]:
        rows = self._query("SELECT * FROM yoga_classes WHERE id = ?", (class_id,))
        return YogaClass.from_row(rows[0]) if rows else None

    def get_class_by_firebase_key(self, firebase_key: str) -> Optional[YogaClass]:
        rows = self._query("SELECT * FROM yoga_classes WHERE firebase_key = ?", (firebase_key,))
        return YogaClass.from_row(rows[0]) if rows else None

    def list_classes_for_course(self, course_id: int) -> List[YogaClass]:
        rows = self._query(
            "SELECT * FROM yoga_classes WHERE course_id = ? ORDER BY " + CLASS_DATE_ORDER.format("ASC"),
            (course_id,),
        )
        return [YogaClass.from_row(row) for row in rows]

    def list_classes(self) -> List[YogaClass]:
        rows = self._query("SELECT * FROM yoga_classes ORDER BY " + CLASS_DATE_ORDER.format("DESC"))
        return [YogaClass.from_row(row) for row in rows]

    def count_classes(self, course_id: int, date: str) -> int:
        rows = self._query(
            "SELECT COUNT(*) AS total FROM yoga_classes WHERE course_id = ? AND date = ?",
            (course_id, date),
        )
        return rows[0]["total"]

    def search_classes(self, instructor: Optional[str] = None, date: Optional[str] = None,
                       day_of_week: Optional[str] = None) -> List[ClassWithCourse]:
        """
        Search classes with three optional filters combined with AND.

        A blank filter matches everything; "All Days" is treated as no day filter.
        """
        instructor = instructor.strip() if instructor and instructor.strip() else None
        date = date.strip() if date and date.strip() else None
        if not day_of_week or not day_of_week.strip() or day_of_week == ALL_DAYS:
            day_of_week = None

        instructor_pattern = _like_pattern(instructor) if instructor else None
        day_pattern = _like_pattern(day_of_week.strip()) if day_of_week else None

        rows = self._query(
            """
            SELECT * FROM yoga_classes
            WHERE (? IS NULL OR assigned_instructor LIKE ? ESCAPE '\\')
              AND (? IS NULL OR date = ?)
              AND (? IS NULL OR course_id IN (
                    SELECT id FROM yoga_courses WHERE day_of_week LIKE ? ESCAPE '\\'))
            ORDER BY """ + CLASS_DATE_ORDER.format("ASC"),
            (instructor_pattern, instructor_pattern, date, date, day_pattern, day_pattern),
        )
        classes = [YogaClass.from_row(row) for row in rows]

        courses: Dict[int, Optional[Course]] = {}
        for yoga_class in classes:
            if yoga_class.course_id not in courses:
                courses[yoga_class.course_id] = self.get_course(yoga_class.course_id)
        return [ClassWithCourse(yoga_class, courses[yoga_class.course_id]) for yoga_class in classes]

    def close(self) -> None:
        """Stop the write executor and close every connection"""
        if self._closed:
            return
        self._closed = True
        self.executor.shutdown(wait=True)
        with self._connections_lock:
            for conn in self._connections:
                try:
                    conn.close()
                except sqlite3.Error as e:
                    logger.warning("Error closing connection: %s", e)
            self._connections.clear()
        logger.info("Local database closed")
