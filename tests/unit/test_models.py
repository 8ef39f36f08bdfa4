# =============================================================================
# tests/unit/test_models.py
# Unit Tests for the course and class records
# =============================================================================

from datetime import date, datetime

import pytest

from yoga_admin.errors import ValidationError
from yoga_admin.models import (
    Booking,
    ClassStatus,
    ClassWithCourse,
    Course,
    User,
    YogaClass,
    filter_courses,
)


class TestCourseFormatting:
    """Display helpers on Course"""

    def test_price_and_duration(self, make_course):
        course = make_course()

        assert course.formatted_price == "£12.50"
        assert course.formatted_duration == "60 minutes"

    def test_display_name(self, make_course):
        assert make_course().display_name == "Hatha - Monday at 18:00"

    def test_created_date(self, make_course):
        millis = int(datetime(2024, 3, 5, 9, 7).timestamp() * 1000)
        course = make_course(created_date=millis)

        assert course.formatted_created_date == "Created: 05/03/2024 09:07"


class TestCourseValidation:
    def test_valid_course_passes(self, make_course):
        make_course().validate()

    def test_lists_every_missing_field(self, make_course):
        course = make_course(day_of_week="Someday", capacity=0, class_type=" ")

        with pytest.raises(ValidationError) as excinfo:
            course.validate()

        message = str(excinfo.value)
        assert "day of week" in message
        assert "capacity" in message
        assert "class type" in message
        assert "price" not in message

    def test_negative_price_rejected(self, make_course):
        with pytest.raises(ValidationError):
            make_course(price=-1).validate()

    def test_free_course_allowed(self, make_course):
        make_course(price=0).validate()


class TestRemoteMapping:
    """camelCase records in Firebase"""

    def test_course_to_firebase_uses_camel_case(self, make_course):
        record = make_course(firebase_key="-abc", id=7).to_firebase()

        assert record["dayOfWeek"] == "Monday"
        assert record["classType"] == "Hatha"
        assert record["instructorName"] == "Anna"
        assert record["firebaseKey"] == "-abc"
        assert "day_of_week" not in record

    def test_course_from_firebase_drops_remote_id(self):
        course = Course.from_firebase("-key1", {
            "id": 99,
            "dayOfWeek": "Friday",
            "time": "07:30",
            "capacity": "15",
            "duration": 45,
            "price": 9,
            "classType": "Vinyasa",
        })

        assert course.id is None
        assert course.firebase_key == "-key1"
        assert course.capacity == 15
        assert course.price == 9.0
        assert course.description is None

    def test_class_from_firebase_leaves_course_unresolved(self):
        yoga_class = YogaClass.from_firebase("-c1", {
            "courseId": 3,
            "courseFirebaseKey": "-course",
            "date": "08/01/2024",
            "assignedInstructor": "Ben",
            "actualCapacity": 12,
            "status": "cancelled",
        })

        assert yoga_class.course_id is None
        assert yoga_class.course_firebase_key == "-course"
        assert yoga_class.slots_available == 12
        assert yoga_class.status == "Cancelled"
        assert yoga_class.firebase_key == "-c1"

    def test_booking_from_firebase(self):
        booking = Booking.from_firebase("-b1", {
            "userId": "u1",
            "classId": "-c1",
            "bookingDate": "2024-01-01T10:00:00Z",
            "price": "12.5",
        })

        assert booking.id == "-b1"
        assert booking.class_id == "-c1"
        assert booking.price == 12.5
        assert booking.class_status is None

    def test_user_from_firebase(self):
        user = User.from_firebase("uid-1", {"email": "a@example.com", "displayName": "A"})

        assert user.uid == "uid-1"
        assert user.display_name == "A"


class TestYogaClass:
    def test_slots_are_clamped_to_capacity(self):
        yoga_class = YogaClass(course_id=1, date="01/01/2024", assigned_instructor="Anna",
                               actual_capacity=10, slots_available=14)

        assert yoga_class.clamped_slots() == 10
        assert yoga_class.to_row()["slots_available"] == 10

    def test_day_of_week_from_date(self):
        yoga_class = YogaClass(course_id=1, date="03/01/2024", assigned_instructor="Anna")

        assert yoga_class.day_of_week == "Wednesday"

    def test_unparsable_date(self):
        yoga_class = YogaClass(course_id=1, date="soon", assigned_instructor="Anna")

        assert yoga_class.day_of_week == ""
        assert not yoga_class.is_past(date(2024, 1, 1))

    def test_is_past(self):
        yoga_class = YogaClass(course_id=1, date="31/12/2023", assigned_instructor="Anna")

        assert yoga_class.is_past(date(2024, 1, 1))
        assert not yoga_class.is_past(date(2023, 12, 31))

    def test_default_status_is_active(self):
        yoga_class = YogaClass(course_id=1, date="01/01/2024", assigned_instructor="Anna")

        assert yoga_class.status == ClassStatus.ACTIVE.value

    def test_display_name_without_course(self):
        yoga_class = YogaClass(course_id=1, date="01/01/2024", assigned_instructor="Anna")

        assert ClassWithCourse(yoga_class, None).display_name == "Class Session - 01/01/2024"


class TestClassStatus:
    @pytest.mark.parametrize("value, expected", [
        ("Scheduled", ClassStatus.SCHEDULED),
        ("completed", ClassStatus.COMPLETED),
        (None, ClassStatus.ACTIVE),
        ("unknown", ClassStatus.ACTIVE),
    ])
    def test_parse(self, value, expected):
        assert ClassStatus.parse(value) is expected


class TestFilterCourses:
    def test_blank_query_returns_everything(self, make_course):
        courses = [make_course(), make_course(class_type="Yin")]

        assert filter_courses(courses, "  ") == courses

    def test_matches_type_instructor_or_day(self, make_course):
        hatha = make_course()
        yin = make_course(class_type="Yin", instructor_name="Carla", day_of_week="Friday")

        assert filter_courses([hatha, yin], "yin") == [yin]
        assert filter_courses([hatha, yin], "ANNA") == [hatha]
        assert filter_courses([hatha, yin], "fri") == [yin]

    def test_missing_instructor_does_not_match(self, make_course):
        course = make_course(instructor_name=None)

        assert filter_courses([course], "anna") == []
