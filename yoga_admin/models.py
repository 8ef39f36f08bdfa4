"""
Data model for the yoga admin backend.

Courses are weekly templates (day, time, capacity, price); classes are the
dated sessions scheduled from a course. Both live in the local SQLite store
with integer ids and are mirrored to Firebase under server-generated keys.
Bookings and users only exist remotely.

Remote records use camelCase field names so they stay readable by the
member-facing app that consumes the same Firebase nodes.
"""

import time as time_module
from dataclasses import dataclass, field, fields
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from yoga_admin.errors import ValidationError


DATE_FORMAT = "%d/%m/%Y"
CREATED_DATE_FORMAT = "%d/%m/%Y %H:%M"

DAYS_OF_WEEK = [
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
]

# Sentinel the day filter uses for "no day selected"
ALL_DAYS = "All Days"


def now_millis() -> int:
    """Current time as epoch milliseconds"""
    return int(time_module.time() * 1000)


def parse_date(value: str) -> date:
    """Parse a dd/MM/yyyy class date"""
    return datetime.strptime(value.strip(), DATE_FORMAT).date()


def format_date(value: date) -> str:
    return value.strftime(DATE_FORMAT)


def format_created_date(millis: int) -> str:
    created = datetime.fromtimestamp(millis / 1000)
    return "Created: " + created.strftime(CREATED_DATE_FORMAT)


def _as_int(value: Any, default: int = 0) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_float(value: Any, default: float = 0.0) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


class ClassStatus(str, Enum):
    """Lifecycle status of a scheduled class."""
    SCHEDULED = "Scheduled"
    ACTIVE = "Active"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"

    @classmethod
    def parse(cls, value: Optional[str]) -> "ClassStatus":
        """Case-insensitive lookup; unknown or missing values read as Active"""
        if value:
            for status in cls:
                if status.value.lower() == str(value).strip().lower():
                    return status
        return cls.ACTIVE


@dataclass
class Course:
    """A recurring weekly course; the template classes are scheduled from."""

    day_of_week: str
    time: str
    capacity: int
    duration: int
    price: float
    class_type: str
    description: Optional[str] = None
    instructor_name: Optional[str] = None
    room_number: Optional[str] = None
    difficulty_level: Optional[str] = None
    equipment_needed: Optional[str] = None
    age_group: Optional[str] = None
    created_date: int = field(default_factory=now_millis)
    id: Optional[int] = None
    firebase_key: Optional[str] = None

    # attribute name -> remote field name
    REMOTE_FIELDS = {
        "id": "id",
        "firebase_key": "firebaseKey",
        "day_of_week": "dayOfWeek",
        "time": "time",
        "capacity": "capacity",
        "duration": "duration",
        "price": "price",
        "class_type": "classType",
        "description": "description",
        "instructor_name": "instructorName",
        "room_number": "roomNumber",
        "difficulty_level": "difficultyLevel",
        "equipment_needed": "equipmentNeeded",
        "age_group": "ageGroup",
        "created_date": "createdDate",
    }

    @property
    def formatted_price(self) -> str:
        return "£%.2f" % self.price

    @property
    def formatted_duration(self) -> str:
        return f"{self.duration} minutes"

    @property
    def formatted_created_date(self) -> str:
        return format_created_date(self.created_date)

    @property
    def display_name(self) -> str:
        return f"{self.class_type} - {self.day_of_week} at {self.time}"

    def validate(self) -> None:
        """Raise ValidationError listing every required field that is missing or out of range"""
        problems = []
        if self.day_of_week not in DAYS_OF_WEEK:
            problems.append("day of week")
        if not (self.time or "").strip():
            problems.append("time")
        if self.capacity is None or self.capacity <= 0:
            problems.append("capacity")
        if self.duration is None or self.duration <= 0:
            problems.append("duration")
        if self.price is None or self.price < 0:
            problems.append("price")
        if not (self.class_type or "").strip():
            problems.append("class type")
        if problems:
            raise ValidationError("Please fill all the required fields: " + ", ".join(problems))

    def to_firebase(self) -> Dict[str, Any]:
        return {remote: getattr(self, attr) for attr, remote in self.REMOTE_FIELDS.items()}

    @classmethod
    def from_firebase(cls, key: str, data: Dict[str, Any]) -> "Course":
        """Build a course from a remote record. The remote id belongs to another device and is dropped."""
        return cls(
            day_of_week=_as_text(data.get("dayOfWeek")) or "",
            time=_as_text(data.get("time")) or "",
            capacity=_as_int(data.get("capacity")),
            duration=_as_int(data.get("duration")),
            price=_as_float(data.get("price")),
            class_type=_as_text(data.get("classType")) or "",
            description=_as_text(data.get("description")),
            instructor_name=_as_text(data.get("instructorName")),
            room_number=_as_text(data.get("roomNumber")),
            difficulty_level=_as_text(data.get("difficultyLevel")),
            equipment_needed=_as_text(data.get("equipmentNeeded")),
            age_group=_as_text(data.get("ageGroup")),
            created_date=_as_int(data.get("createdDate"), now_millis()),
            firebase_key=_as_text(data.get("firebaseKey")) or key,
        )

    def to_row(self) -> Dict[str, Any]:
        """Column values for the yoga_courses table, without the id"""
        return {f.name: getattr(self, f.name) for f in fields(self) if f.name != "id"}

    @classmethod
    def from_row(cls, row) -> "Course":
        return cls(**{f.name: row[f.name] for f in fields(cls)})


@dataclass
class YogaClass:
    """A dated session of a course."""

    course_id: Optional[int]
    date: str
    assigned_instructor: str
    actual_capacity: int = 0
    slots_available: int = 0
    additional_comments: Optional[str] = None
    status: str = ClassStatus.ACTIVE.value
    created_date: int = field(default_factory=now_millis)
    id: Optional[int] = None
    firebase_key: Optional[str] = None
    course_firebase_key: Optional[str] = None

    REMOTE_FIELDS = {
        "id": "id",
        "firebase_key": "firebaseKey",
        "course_firebase_key": "courseFirebaseKey",
        "course_id": "courseId",
        "date": "date",
        "assigned_instructor": "assignedInstructor",
        "actual_capacity": "actualCapacity",
        "slots_available": "slotsAvailable",
        "additional_comments": "additionalComments",
        "status": "status",
        "created_date": "createdDate",
    }

    @property
    def day_of_week(self) -> str:
        """Weekday name of the class date, or an empty string for an unparsable date"""
        try:
            return DAYS_OF_WEEK[parse_date(self.date).weekday()]
        except (AttributeError, ValueError):
            return ""

    @property
    def formatted_created_date(self) -> str:
        return format_created_date(self.created_date)

    def is_past(self, today: Optional[date] = None) -> bool:
        today = today or date.today()
        try:
            return parse_date(self.date) < today
        except (AttributeError, ValueError):
            return False

    def clamped_slots(self) -> int:
        """Slots available, never more than the capacity actually offered"""
        return max(0, min(self.slots_available, self.actual_capacity))

    def to_firebase(self) -> Dict[str, Any]:
        return {remote: getattr(self, attr) for attr, remote in self.REMOTE_FIELDS.items()}

    @classmethod
    def from_firebase(cls, key: str, data: Dict[str, Any]) -> "YogaClass":
        """Build a class from a remote record. course_id is left unresolved for the caller to remap."""
        actual_capacity = _as_int(data.get("actualCapacity"))
        return cls(
            course_id=None,
            date=_as_text(data.get("date")) or "",
            assigned_instructor=_as_text(data.get("assignedInstructor")) or "",
            actual_capacity=actual_capacity,
            slots_available=_as_int(data.get("slotsAvailable"), actual_capacity),
            additional_comments=_as_text(data.get("additionalComments")),
            status=ClassStatus.parse(data.get("status")).value,
            created_date=_as_int(data.get("createdDate"), now_millis()),
            firebase_key=_as_text(data.get("firebaseKey")) or key,
            course_firebase_key=_as_text(data.get("courseFirebaseKey")),
        )

    def to_row(self) -> Dict[str, Any]:
        row = {f.name: getattr(self, f.name) for f in fields(self) if f.name != "id"}
        row["slots_available"] = self.clamped_slots()
        return row

    @classmethod
    def from_row(cls, row) -> "YogaClass":
        return cls(**{f.name: row[f.name] for f in fields(cls)})


@dataclass
class ClassWithCourse:
    """A class together with the course it was scheduled from."""
    yoga_class: YogaClass
    course: Optional[Course]

    @property
    def display_name(self) -> str:
        if self.course:
            return f"{self.course.class_type} - {self.yoga_class.date}"
        return f"Class Session - {self.yoga_class.date}"


@dataclass
class Booking:
    """A member's booking of a class, stored only in Firebase."""

    id: str
    user_id: str
    class_id: str
    booking_date: str
    user_name: Optional[str] = None
    user_email: Optional[str] = None
    class_name: Optional[str] = None
    class_date: Optional[str] = None
    class_time: Optional[str] = None
    price: Optional[float] = None
    class_status: Optional[str] = None

    @classmethod
    def from_firebase(cls, key: str, data: Dict[str, Any]) -> "Booking":
        price = data.get("price")
        return cls(
            id=_as_text(data.get("id")) or key,
            user_id=_as_text(data.get("userId")) or "",
            class_id=_as_text(data.get("classId")) or "",
            booking_date=_as_text(data.get("bookingDate")) or "",
            user_name=_as_text(data.get("userName")),
            user_email=_as_text(data.get("userEmail")),
            class_name=_as_text(data.get("className")),
            class_date=_as_text(data.get("classDate")),
            class_time=_as_text(data.get("classTime")),
            price=_as_float(price) if price is not None else None,
            class_status=_as_text(data.get("classStatus")),
        )


@dataclass
class User:
    """A member account, read-only from the admin side."""
    uid: str
    email: Optional[str] = None
    display_name: Optional[str] = None

    @classmethod
    def from_firebase(cls, key: str, data: Dict[str, Any]) -> "User":
        return cls(
            uid=_as_text(data.get("uid")) or key,
            email=_as_text(data.get("email")),
            display_name=_as_text(data.get("displayName")),
        )


def filter_courses(courses: Iterable[Course], query: str) -> List[Course]:
    """Case-insensitive match of query against class type, instructor and day of week"""
    courses = list(courses)
    needle = (query or "").strip().lower()
    if not needle:
        return courses

    def matches(value: Optional[str]) -> bool:
        return value is not None and needle in value.lower()

    return [
        course for course in courses
        if matches(course.class_type) or matches(course.instructor_name) or matches(course.day_of_week)
    ]
