"""
Typed records for the studio collections.

Each record maps to and from its store document through ``from_store`` /
``to_store``. ``from_store`` validates the raw document and raises
``studio.errors.ValidationError`` when it is malformed.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, TypeVar

from . import errors
from .serializers import (
    BookingDocumentSerializer,
    CartItemDocumentSerializer,
    CourseDocumentSerializer,
    ScheduleDocumentSerializer,
    validate_document,
)
from .types import BOOKING_CANCELLED, BOOKING_CONFIRMED, CART_PENDING, DAY_ORDER


logger = logging.getLogger(__name__)

Record = TypeVar('Record')


# (attribute, document key) pairs copied from a cart row into a booking line
SNAPSHOT_FIELDS = (
    ('course_id', 'courseId'),
    ('instance_id', 'instanceId'),
    ('class_name', 'className'),
    ('class_type', 'classType'),
    ('teacher', 'teacher'),
    ('date', 'date'),
    ('time', 'time'),
    ('duration', 'duration'),
    ('price', 'price'),
    ('quantity', 'quantity'),
    ('day_of_week', 'dayOfWeek'),
    ('description', 'description'),
    ('comments', 'comments'),
)

TEXT_SNAPSHOT_FIELDS = ('class_type', 'teacher', 'time', 'day_of_week', 'description', 'comments')


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat(timespec='microseconds') if value else None


def format_date(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


def parse_rows(
    rows: Iterable[Tuple[str, Dict[str, Any]]],
    parser: Callable[[str, Dict[str, Any]], Record],
    label: str
) -> List[Record]:
    """Parse store rows into records, skipping malformed documents."""
    records = []
    for doc_id, data in rows:
        try:
            records.append(parser(doc_id, data))
        except errors.ValidationError as exc:
            logger.warning("Skipping invalid %s document %s: %s", label, doc_id, exc.message)
    return records


def _snapshot_values(values: Dict[str, Any]) -> Dict[str, Any]:
    """Read the snapshot fields out of validated document values."""
    snapshot = {name: values.get(key) for name, key in SNAPSHOT_FIELDS}
    for name in TEXT_SNAPSHOT_FIELDS:
        snapshot[name] = snapshot[name] or ''
    snapshot['duration'] = snapshot['duration'] or 0
    return snapshot


def _snapshot_document(record) -> Dict[str, Any]:
    document = {key: getattr(record, name) for name, key in SNAPSHOT_FIELDS}
    document['date'] = format_date(record.date)
    return document


@dataclass
class Course:
    """A recurring weekly class template."""
    id: str
    day_of_week: str
    time: str
    capacity: int
    duration: int
    price: float
    type: str
    description: str = ''
    last_updated: Optional[datetime] = None

    @property
    def day_index(self) -> int:
        return DAY_ORDER[self.day_of_week]

    @classmethod
    def from_store(cls, doc_id: str, data: Dict[str, Any]) -> 'Course':
        values = validate_document(CourseDocumentSerializer, data, f"course {doc_id}")
        return cls(
            id=doc_id,
            day_of_week=values['dayOfWeek'],
            time=values['time'],
            capacity=values['capacity'],
            duration=values['duration'],
            price=values['price'],
            type=values['type'],
            description=values['description'] or '',
            last_updated=values['lastUpdated'],
        )

    def to_store(self) -> Dict[str, Any]:
        return {
            'dayOfWeek': self.day_of_week,
            'time': self.time,
            'capacity': self.capacity,
            'duration': self.duration,
            'price': self.price,
            'type': self.type,
            'description': self.description,
            'lastUpdated': format_timestamp(self.last_updated),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, **self.to_store()}


@dataclass
class RosterEntry:
    """Back-reference from a schedule to one booking that reserved it."""
    booking_id: str
    user_id: str
    user_email: str = ''
    booked_at: Optional[datetime] = None
    quantity: int = 1

    def to_store(self) -> Dict[str, Any]:
        return {
            'bookingId': self.booking_id,
            'userId': self.user_id,
            'userEmail': self.user_email,
            'bookedAt': format_timestamp(self.booked_at),
            'quantity': self.quantity,
        }


@dataclass
class ScheduleInstance:
    """One dated occurrence of a course."""
    id: str
    course_id: str
    date: date
    teacher: str
    comments: str = ''
    roster: List[RosterEntry] = field(default_factory=list)
    last_updated: Optional[datetime] = None

    @property
    def booked_quantity(self) -> int:
        return sum(entry.quantity for entry in self.roster)

    def is_bookable(self, today: date) -> bool:
        """Only schedules strictly after today can be booked."""
        return self.date > today

    @classmethod
    def from_store(cls, doc_id: str, data: Dict[str, Any]) -> 'ScheduleInstance':
        values = validate_document(ScheduleDocumentSerializer, data, f"schedule {doc_id}")
        return cls(
            id=doc_id,
            course_id=values['courseId'],
            date=values['date'],
            teacher=values['teacher'],
            comments=values['comments'] or '',
            roster=[
                RosterEntry(
                    booking_id=entry['bookingId'],
                    user_id=entry['userId'],
                    user_email=entry['userEmail'],
                    booked_at=entry['bookedAt'],
                    quantity=entry['quantity'],
                )
                for entry in values.get('bookings', [])
            ],
            last_updated=values['lastUpdated'],
        )

    def to_store(self) -> Dict[str, Any]:
        return {
            'courseId': self.course_id,
            'date': format_date(self.date),
            'teacher': self.teacher,
            'comments': self.comments,
            'bookings': [entry.to_store() for entry in self.roster],
            'lastUpdated': format_timestamp(self.last_updated),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, **self.to_store()}


@dataclass
class BookingItem:
    """Snapshot of a cart row inside a booking."""
    course_id: str
    instance_id: str
    class_name: str
    price: float
    quantity: int = 1
    class_type: str = ''
    teacher: str = ''
    date: Optional[date] = None
    time: str = ''
    duration: int = 0
    day_of_week: str = ''
    description: str = ''
    comments: str = ''

    @property
    def line_total(self) -> float:
        return self.price * self.quantity

    def to_store(self) -> Dict[str, Any]:
        return _snapshot_document(self)


@dataclass
class CartItem:
    """A pending intent to book a specific schedule instance."""
    id: Optional[str]
    user_id: str
    course_id: str
    instance_id: str
    class_name: str
    price: float
    quantity: int = 1
    class_type: str = ''
    teacher: str = ''
    date: Optional[date] = None
    time: str = ''
    duration: int = 0
    day_of_week: str = ''
    capacity: int = 0
    description: str = ''
    comments: str = ''
    added_at: Optional[datetime] = None
    status: str = CART_PENDING
    booking_id: Optional[str] = None
    booked_at: Optional[datetime] = None

    @property
    def line_total(self) -> float:
        return self.price * self.quantity

    @classmethod
    def from_store(cls, doc_id: Optional[str], data: Dict[str, Any]) -> 'CartItem':
        label = f"cart item {doc_id}" if doc_id else "cart item"
        values = validate_document(CartItemDocumentSerializer, data, label)
        return cls(
            id=doc_id,
            user_id=values['userId'],
            capacity=values['capacity'] or 0,
            added_at=values['addedAt'],
            status=values['status'],
            booking_id=values['bookingId'],
            booked_at=values['bookedAt'],
            **_snapshot_values(values),
        )

    @classmethod
    def from_course_and_schedule(
        cls,
        user_id: str,
        course: Course,
        schedule: ScheduleInstance,
        quantity: int = 1
    ) -> 'CartItem':
        """Build an unsaved cart row from the catalog documents it points at."""
        return cls(
            id=None,
            user_id=user_id,
            course_id=course.id or schedule.course_id,
            instance_id=schedule.id,
            class_name=course.type,
            class_type=course.type,
            teacher=schedule.teacher,
            date=schedule.date,
            time=course.time,
            duration=course.duration,
            price=course.price,
            quantity=quantity,
            day_of_week=course.day_of_week,
            capacity=course.capacity,
            description=course.description,
            comments=schedule.comments,
        )

    def to_booking_item(self) -> BookingItem:
        return BookingItem(**{name: getattr(self, name) for name, _ in SNAPSHOT_FIELDS})

    def to_store(self) -> Dict[str, Any]:
        return {
            'userId': self.user_id,
            **_snapshot_document(self),
            'capacity': self.capacity,
            'addedAt': format_timestamp(self.added_at),
            'status': self.status,
            'bookingId': self.booking_id,
            'bookedAt': format_timestamp(self.booked_at),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, **self.to_store(), 'lineTotal': self.line_total}


@dataclass
class BookingSummary:
    total_amount: float
    total_items: int
    total_quantity: int

    @classmethod
    def from_items(cls, items: Iterable[BookingItem]) -> 'BookingSummary':
        items = list(items)
        return cls(
            total_amount=sum(item.line_total for item in items),
            total_items=len(items),
            total_quantity=sum(item.quantity for item in items),
        )

    def to_store(self) -> Dict[str, Any]:
        return {
            'totalAmount': self.total_amount,
            'totalItems': self.total_items,
            'totalQuantity': self.total_quantity,
        }


@dataclass
class Booking:
    """A confirmed purchase of one or more cart rows."""
    id: Optional[str]
    user_id: str
    user_email: str
    items: List[BookingItem]
    summary: BookingSummary
    status: str = BOOKING_CONFIRMED
    booking_date: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    payment_details: Optional[Any] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_cancelled(self) -> bool:
        return self.status == BOOKING_CANCELLED

    @property
    def schedule_ids(self) -> List[str]:
        """Distinct schedule ids referenced by the items, in item order."""
        seen = []
        for item in self.items:
            if item.instance_id and item.instance_id not in seen:
                seen.append(item.instance_id)
        return seen

    @classmethod
    def from_store(cls, doc_id: str, data: Dict[str, Any]) -> 'Booking':
        values = validate_document(BookingDocumentSerializer, data, f"booking {doc_id}")
        summary = values['summary']
        return cls(
            id=doc_id,
            user_id=values['userId'],
            user_email=values['userEmail'],
            items=[BookingItem(**_snapshot_values(item)) for item in values['items']],
            summary=BookingSummary(
                total_amount=summary['totalAmount'],
                total_items=summary['totalItems'],
                total_quantity=summary['totalQuantity'],
            ),
            status=values['status'],
            booking_date=values['bookingDate'],
            cancelled_at=values['cancelledAt'],
            payment_details=values['paymentDetails'],
            created_at=values['createdAt'],
            updated_at=values['updatedAt'],
        )

    def to_store(self) -> Dict[str, Any]:
        return {
            'userId': self.user_id,
            'userEmail': self.user_email,
            'items': [item.to_store() for item in self.items],
            'summary': self.summary.to_store(),
            'status': self.status,
            'bookingDate': format_timestamp(self.booking_date),
            'cancelledAt': format_timestamp(self.cancelled_at),
            'paymentDetails': self.payment_details,
            'createdAt': format_timestamp(self.created_at),
            'updatedAt': format_timestamp(self.updated_at),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, **self.to_store()}
