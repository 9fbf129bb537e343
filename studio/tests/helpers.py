"""Builders for the documents the tests seed into the store."""

from datetime import timedelta

from django.utils import timezone

from studio.store import CART, COURSES, SCHEDULES


def days_from_today(days):
    return timezone.localdate() + timedelta(days=days)


def course_data(**overrides):
    data = {
        'dayOfWeek': 'Monday',
        'time': '10:00',
        'capacity': 10,
        'duration': 60,
        'price': 15.0,
        'type': 'Flow Yoga',
        'description': 'Morning flow',
    }
    data.update(overrides)
    return data


def schedule_data(course_id, day, **overrides):
    data = {
        'courseId': course_id,
        'date': day.isoformat(),
        'teacher': 'Alice',
        'comments': '',
        'bookings': [],
    }
    data.update(overrides)
    return data


def cart_item_data(course_id, schedule_id, day, **overrides):
    data = {
        'courseId': course_id,
        'instanceId': schedule_id,
        'className': 'Flow Yoga',
        'classType': 'Flow Yoga',
        'teacher': 'Alice',
        'date': day.isoformat() if day else None,
        'time': '10:00',
        'duration': 60,
        'price': 15.0,
        'quantity': 1,
        'dayOfWeek': 'Monday',
        'capacity': 10,
    }
    data.update(overrides)
    return data


def create_course(store, **overrides):
    return store.add(COURSES, course_data(**overrides))


def create_schedule(store, course_id, day, **overrides):
    return store.add(SCHEDULES, schedule_data(course_id, day, **overrides))


def create_cart_row(store, user_id, course_id, schedule_id, day, **overrides):
    """Insert a cart row directly, bypassing CartService."""
    data = cart_item_data(course_id, schedule_id, day, **overrides)
    data.setdefault('userId', user_id)
    data.setdefault('status', 'pending')
    data.setdefault('addedAt', timezone.now().isoformat())
    return store.add(CART, data)
