"""
Data types and constants for the studio booking system.

This module contains:
- Constants used across the application
- DTOs (Data Transfer Objects) returned by the service layer
"""

from dataclasses import dataclass, field
from typing import Dict, Optional


DAYS_OF_WEEK = (
    'Monday',
    'Tuesday',
    'Wednesday',
    'Thursday',
    'Friday',
    'Saturday',
    'Sunday',
)
DAY_ORDER = {day: index for index, day in enumerate(DAYS_OF_WEEK)}

CLASS_TYPES = ('Flow Yoga', 'Aerial Yoga', 'Family Yoga')
UNKNOWN_CLASS_TYPE = 'Unknown'

TIME_PATTERN = r'^([01]\d|2[0-3]):[0-5]\d$'
MAX_DURATION_MINUTES = 480

TIME_SLOTS = tuple(
    f"{hour:02d}:{minute:02d}"
    for hour in range(9, 21)
    for minute in (0, 30)
    if not (hour == 20 and minute == 30)
)

CART_PENDING = 'pending'
CART_BOOKED = 'booked'
CART_STATUSES = (CART_PENDING, CART_BOOKED)

BOOKING_PENDING = 'pending'
BOOKING_CONFIRMED = 'confirmed'
BOOKING_CANCELLED = 'cancelled'
BOOKING_STATUSES = (BOOKING_PENDING, BOOKING_CONFIRMED, BOOKING_CANCELLED)

SORT_BY_DAY = 'dayOfWeek'
COURSE_SORT_ORDERS = (SORT_BY_DAY, 'price', 'priceDesc', 'duration', 'type', 'time')


@dataclass(frozen=True)
class Identity:
    """Caller identity supplied by the auth provider."""
    uid: str
    email: str


@dataclass
class CourseFilter:
    """DTO for course listing filters."""
    day_of_week: Optional[str] = None
    time: Optional[str] = None
    type: Optional[str] = None
    max_price: Optional[float] = None
    min_capacity: Optional[int] = None
    max_duration: Optional[int] = None
    search: Optional[str] = None


@dataclass
class Availability:
    """Free spots of one schedule instance."""
    available: bool
    available_spots: int
    capacity: int
    booked: int

    def to_dict(self):
        return {
            'available': self.available,
            'availableSpots': self.available_spots,
            'capacity': self.capacity,
            'booked': self.booked,
        }


@dataclass
class CartSummary:
    """Aggregated totals of a user's pending cart."""
    total_items: int = 0
    total_quantity: int = 0
    total_amount: float = 0.0
    items_by_type: Dict[str, int] = field(default_factory=dict)
    upcoming_classes_count: int = 0

    def to_dict(self):
        return {
            'totalItems': self.total_items,
            'totalQuantity': self.total_quantity,
            'totalAmount': self.total_amount,
            'itemsByType': dict(self.items_by_type),
            'upcomingClassesCount': self.upcoming_classes_count,
        }


@dataclass
class BookingStats:
    """Aggregated statistics over a user's booking history."""
    total_bookings: int = 0
    total_spent: float = 0.0
    confirmed_count: int = 0
    cancelled_count: int = 0
    upcoming_classes: int = 0
    past_classes: int = 0
    class_type_stats: Dict[str, int] = field(default_factory=dict)
    favorite_class_type: Optional[str] = None
    monthly_spending: Dict[str, float] = field(default_factory=dict)
    average_per_booking: float = 0.0

    def to_dict(self):
        return {
            'totalBookings': self.total_bookings,
            'totalSpent': self.total_spent,
            'confirmedCount': self.confirmed_count,
            'cancelledCount': self.cancelled_count,
            'upcomingClasses': self.upcoming_classes,
            'pastClasses': self.past_classes,
            'classTypeStats': dict(self.class_type_stats),
            'favoriteClassType': self.favorite_class_type,
            'monthlySpending': dict(self.monthly_spending),
            'averagePerBooking': self.average_per_booking,
        }
