"""
Class scheduling rules.

A course runs on one weekday, so classes can only be scheduled on that
weekday, never in the past, and at most once per course per date. Creating
with repeat_weeks > 1 schedules the same slot on consecutive weeks.
"""

import logging
from concurrent.futures import Future
from datetime import date, timedelta
from typing import Callable, List, Optional

from yoga_admin.errors import DuplicateClassError, ValidationError
from yoga_admin.models import (
    DAYS_OF_WEEK,
    ClassStatus,
    Course,
    YogaClass,
    format_date,
    now_millis,
    parse_date,
)

logger = logging.getLogger(__name__)


def actual_capacity(course: Course, custom_capacity: Optional[int]) -> int:
    """The custom capacity when positive, otherwise the course default"""
    if custom_capacity is not None and custom_capacity > 0:
        return custom_capacity
    return course.capacity


def weekly_dates(start: date, repeat_weeks: int) -> List[str]:
    return [format_date(start + timedelta(weeks=week)) for week in range(repeat_weeks)]


class ClassScheduler:
    def __init__(self, class_repository, today: Callable[[], date] = date.today):
        self.class_repository = class_repository
        self.today = today

    def _check_date(self, course: Course, date_text: str, allow_past: bool = False) -> date:
        if not date_text or not date_text.strip():
            raise ValidationError("Please select a date.")
        try:
            class_date = parse_date(date_text)
        except ValueError:
            raise ValidationError(f"Invalid date '{date_text}', expected dd/mm/yyyy")

        weekday = DAYS_OF_WEEK[class_date.weekday()]
        if weekday != course.day_of_week:
            raise ValidationError(f"{format_date(class_date)} is a {weekday}, this course runs on {course.day_of_week}")
        if not allow_past and class_date < self.today():
            raise ValidationError(f"{format_date(class_date)} is in the past")
        return class_date

    @staticmethod
    def _check_instructor(instructor: str) -> str:
        instructor = (instructor or "").strip()
        if not instructor:
            raise ValidationError("Please enter a instructor's name.")
        return instructor

    def create_classes(self, course: Course, start_date: str, instructor: str,
                       custom_capacity: Optional[int] = None, comments: str = "",
                       repeat_weeks: int = 1) -> List[Future]:
        """
        Schedule repeat_weeks classes, 7 days apart, starting on start_date.

        Every date is checked for an existing class of the course before
        anything is inserted, so either all classes are created or none.

        Raises:
            ValidationError: bad date, weekday, instructor or repeat count
            DuplicateClassError: a class already exists on one of the dates
            LocalStoreError: the existence check itself failed
        """
        if course.id is None:
            raise ValidationError("Save the course before scheduling classes")
        if repeat_weeks is None or repeat_weeks < 1:
            raise ValidationError("Repeat weeks must be at least 1")
        start = self._check_date(course, start_date)
        instructor = self._check_instructor(instructor)

        dates = weekly_dates(start, repeat_weeks)
        for class_date in dates:
            if self.class_repository.exists_for_course_on_date(course.id, class_date):
                raise DuplicateClassError(course.id, class_date)

        capacity = actual_capacity(course, custom_capacity)
        comments = (comments or "").strip() or None
        futures = []
        for class_date in dates:
            yoga_class = YogaClass(
                course_id=course.id,
                course_firebase_key=course.firebase_key,
                date=class_date,
                assigned_instructor=instructor,
                actual_capacity=capacity,
                slots_available=capacity,
                additional_comments=comments,
                status=ClassStatus.ACTIVE.value,
                created_date=now_millis(),
            )
            futures.append(self.class_repository.insert(yoga_class))

        logger.info("Scheduled %d classes of course %s from %s", len(dates), course.id, dates[0])
        return futures

    def update_class(self, existing: YogaClass, course: Course, date_text: str, instructor: str,
                     custom_capacity: Optional[int] = None, comments: str = "") -> Future:
        """Edit a class in place. No uniqueness check; slots are reset to the new capacity."""
        class_date = self._check_date(course, date_text, allow_past=True)
        instructor = self._check_instructor(instructor)
        capacity = actual_capacity(course, custom_capacity)

        updated = YogaClass(
            id=existing.id,
            firebase_key=existing.firebase_key,
            course_id=course.id,
            course_firebase_key=course.firebase_key,
            date=format_date(class_date),
            assigned_instructor=instructor,
            actual_capacity=capacity,
            slots_available=capacity,
            additional_comments=(comments or "").strip() or None,
            status=existing.status,
            created_date=existing.created_date,
        )
        return self.class_repository.update(updated)
