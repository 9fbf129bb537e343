"""
Catalog queries over courses and their schedule instances.

Every operation is a read without side effects and is safe to retry.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import List, Optional

from django.utils import timezone

from . import errors
from .documents import Course, ScheduleInstance, parse_rows
from .store import COURSES, SCHEDULES, DocumentStore
from .types import SORT_BY_DAY, Availability, CourseFilter


logger = logging.getLogger(__name__)


@dataclass
class ScheduleDetails:
    """A schedule joined with its course and current availability."""
    schedule: ScheduleInstance
    course: Optional[Course]
    availability: Optional[Availability]
    is_bookable: bool

    def to_dict(self):
        return {
            'schedule': self.schedule.to_dict(),
            'course': self.course.to_dict() if self.course else None,
            'availability': self.availability.to_dict() if self.availability else None,
            'isBookable': self.is_bookable,
        }


COURSE_SORT_KEYS = {
    SORT_BY_DAY: lambda course: (course.day_index, course.time),
    'price': lambda course: course.price,
    'priceDesc': lambda course: course.price,
    'duration': lambda course: course.duration,
    'type': lambda course: course.type,
    'time': lambda course: course.time,
}


def _matches_search(course: Course, term: str) -> bool:
    needle = term.strip().lower()
    return any(
        needle in field.lower()
        for field in (course.type, course.description, course.day_of_week)
        if field
    )


def compute_availability(schedule: ScheduleInstance, course: Course) -> Availability:
    """
    Compute the free spots of a schedule.

    Spots are the course capacity minus the summed roster quantities,
    floored at zero.
    """
    booked = schedule.booked_quantity
    spots = max(course.capacity - booked, 0)
    return Availability(
        available=spots > 0,
        available_spots=spots,
        capacity=course.capacity,
        booked=booked,
    )


class CatalogService:
    """
    Read-only lookups over the course catalog.

    Args:
        store: DocumentStore used for every read
    """

    def __init__(self, store: DocumentStore):
        self.store = store

    def get_course(self, course_id: str) -> Course:
        """
        Get a course by id.

        Raises:
            NotFound: If no course has this id
            ValidationError: If the stored course is malformed
        """
        data = self.store.get(COURSES, course_id)
        if data is None:
            raise errors.NotFound(f"Course {course_id} not found")
        return Course.from_store(course_id, data)

    def list_courses(
        self,
        course_filter: Optional[CourseFilter] = None,
        sort_by: str = SORT_BY_DAY
    ) -> List[Course]:
        """
        List courses matching a filter.

        Results are ordered by weekday (Monday first) and then by time,
        unless ``sort_by`` names another order; ties keep the weekday order.

        Args:
            course_filter: Optional CourseFilter; unset fields do not filter.
                ``search`` matches type, description or weekday,
                case-insensitively.
            sort_by: One of COURSE_SORT_ORDERS

        Raises:
            ValidationError: If sort_by is not a known order
        """
        if sort_by not in COURSE_SORT_KEYS:
            raise errors.ValidationError(f"Unknown sort order: {sort_by}")
        course_filter = course_filter or CourseFilter()

        where = []
        if course_filter.day_of_week:
            where.append(('dayOfWeek', '==', course_filter.day_of_week))
        if course_filter.time:
            where.append(('time', '==', course_filter.time))
        if course_filter.type:
            where.append(('type', '==', course_filter.type))
        if course_filter.max_price is not None:
            where.append(('price', '<=', course_filter.max_price))
        if course_filter.min_capacity is not None:
            where.append(('capacity', '>=', course_filter.min_capacity))
        if course_filter.max_duration is not None:
            where.append(('duration', '<=', course_filter.max_duration))

        courses = parse_rows(self.store.query(COURSES, where), Course.from_store, 'course')
        if course_filter.search:
            courses = [course for course in courses if _matches_search(course, course_filter.search)]

        courses.sort(key=COURSE_SORT_KEYS[SORT_BY_DAY])
        if sort_by == 'priceDesc':
            courses.sort(key=COURSE_SORT_KEYS[sort_by], reverse=True)
        elif sort_by != SORT_BY_DAY:
            courses.sort(key=COURSE_SORT_KEYS[sort_by])
        return courses

    def list_courses_by_day(self, day_of_week: str) -> List[Course]:
        return self.list_courses(CourseFilter(day_of_week=day_of_week))

    def list_courses_by_type(self, class_type: str) -> List[Course]:
        return self.list_courses(CourseFilter(type=class_type))

    def list_courses_by_time(self, time_of_day: str) -> List[Course]:
        return self.list_courses(CourseFilter(time=time_of_day))

    def get_schedule(self, schedule_id: str) -> ScheduleInstance:
        """
        Get a schedule instance by id.

        Raises:
            NotFound: If no schedule has this id
        """
        data = self.store.get(SCHEDULES, schedule_id)
        if data is None:
            raise errors.NotFound(f"Schedule {schedule_id} not found")
        return ScheduleInstance.from_store(schedule_id, data)

    def list_schedules_for_course(self, course_id: str) -> List[ScheduleInstance]:
        """
        List a course's schedule instances ordered by date.

        Numeric ids also match schedules that store ``courseId`` as an integer.
        """
        course_ids = [str(course_id)]
        if course_ids[0].isdigit():
            course_ids.append(int(course_ids[0]))

        rows = self.store.query(
            SCHEDULES,
            where=[('courseId', 'in', course_ids)],
            order_by=[('date', 'asc')]
        )
        return parse_rows(rows, ScheduleInstance.from_store, 'schedule')

    def list_available_schedules(self, as_of: Optional[date] = None) -> List[ScheduleInstance]:
        """
        List schedules dated strictly after ``as_of`` (default today).

        A schedule dated today is no longer bookable and is excluded.
        """
        as_of = as_of or timezone.localdate()
        rows = self.store.query(
            SCHEDULES,
            where=[('date', '>', as_of.isoformat())],
            order_by=[('date', 'asc')]
        )
        return parse_rows(rows, ScheduleInstance.from_store, 'schedule')

    def list_schedules_between(self, start: date, end: date) -> List[ScheduleInstance]:
        """
        List schedules dated within [start, end].

        Raises:
            ValidationError: If start is after end
        """
        if start > end:
            raise errors.ValidationError("Start date must not be after end date")

        rows = self.store.query(
            SCHEDULES,
            where=[('date', '>=', start.isoformat()), ('date', '<=', end.isoformat())],
            order_by=[('date', 'asc')]
        )
        return parse_rows(rows, ScheduleInstance.from_store, 'schedule')

    def list_schedules_with_courses(
        self,
        start: Optional[date] = None,
        end: Optional[date] = None,
        today: Optional[date] = None
    ) -> List[ScheduleDetails]:
        """
        Join schedules with their courses and availability.

        Without a window, only bookable (future) schedules are returned.
        A schedule whose course has vanished is returned with ``course``
        and ``availability`` set to None.
        """
        today = today or timezone.localdate()
        if start or end:
            schedules = self.list_schedules_between(start or date.min, end or date.max)
        else:
            schedules = self.list_available_schedules(as_of=today)

        courses = {}
        for course_id in {schedule.course_id for schedule in schedules}:
            try:
                courses[course_id] = self.get_course(course_id)
            except (errors.NotFound, errors.ValidationError) as exc:
                logger.warning("Could not load course %s: %s", course_id, exc.message)

        details = []
        for schedule in schedules:
            course = courses.get(schedule.course_id)
            details.append(ScheduleDetails(
                schedule=schedule,
                course=course,
                availability=compute_availability(schedule, course) if course else None,
                is_bookable=schedule.is_bookable(today),
            ))
        return details

    def search_schedules_by_teacher(self, teacher_name: str) -> List[ScheduleInstance]:
        """
        Find schedules whose teacher name contains ``teacher_name``.

        Matching is case-insensitive and done on the fetched rows.
        """
        needle = teacher_name.strip().lower()
        rows = self.store.query(SCHEDULES, order_by=[('teacher', 'asc'), ('date', 'asc')])
        matching_rows = [
            (doc_id, data) for doc_id, data in rows
            if isinstance(data.get('teacher'), str) and needle in data['teacher'].lower()
        ]
        return parse_rows(matching_rows, ScheduleInstance.from_store, 'schedule')

    def compute_availability(self, schedule: ScheduleInstance, course: Course) -> Availability:
        return compute_availability(schedule, course)

    def check_availability(
        self,
        course_id: str,
        schedule_id: str,
        as_of: Optional[date] = None
    ) -> Availability:
        """
        Check that a schedule can still be added to a cart.

        Raises:
            NotFound: If the schedule or course does not exist
            InvalidState: If the schedule is not strictly in the future
        """
        as_of = as_of or timezone.localdate()
        schedule = self.get_schedule(schedule_id)
        if not schedule.is_bookable(as_of):
            raise errors.InvalidState("Cannot book classes in the past")

        course = self.get_course(course_id)
        return compute_availability(schedule, course)

