"""
Booking and reconciliation engine.

Turns cart rows into bookings and cancels them again. Submission and
cancellation each run as one store transaction covering the booking, the
cart rows it consumes, and the rosters of every schedule it references:
either all of those documents change or none does.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Union

from django.utils import timezone

from . import errors
from .catalog import compute_availability
from .conf import studio_setting
from .documents import (
    Booking,
    BookingItem,
    BookingSummary,
    CartItem,
    Course,
    RosterEntry,
    ScheduleInstance,
    format_timestamp,
    parse_rows,
)
from .store import BOOKINGS, CART, COURSES, SCHEDULES, DocumentStore, Transaction
from .types import (
    BOOKING_CANCELLED,
    BOOKING_CONFIRMED,
    BOOKING_PENDING,
    BOOKING_STATUSES,
    CART_BOOKED,
    CART_PENDING,
    UNKNOWN_CLASS_TYPE,
    BookingStats,
)


logger = logging.getLogger(__name__)

CartItemInput = Union[CartItem, Dict[str, Any]]


@dataclass
class UpcomingClass:
    """A future class taken from a confirmed booking."""
    booking_id: str
    booking_date: Optional[datetime]
    item: BookingItem

    def to_dict(self):
        return {
            **self.item.to_store(),
            'bookingId': self.booking_id,
            'bookingDate': format_timestamp(self.booking_date),
        }


def is_cancellable(booking: Booking, today: Optional[date] = None) -> bool:
    """A booking can be cancelled while confirmed and holding a future class."""
    if booking.status != BOOKING_CONFIRMED:
        return False
    today = today or timezone.localdate()
    return any(item.date and item.date > today for item in booking.items)


def get_upcoming_classes(bookings: Iterable[Booking], today: Optional[date] = None) -> List[UpcomingClass]:
    """Collect future classes of confirmed bookings, soonest first."""
    today = today or timezone.localdate()
    upcoming = [
        UpcomingClass(booking_id=booking.id, booking_date=booking.booking_date, item=item)
        for booking in bookings
        if booking.status == BOOKING_CONFIRMED
        for item in booking.items
        if item.date and item.date > today
    ]
    return sorted(upcoming, key=lambda upcoming_class: upcoming_class.item.date)


def group_bookings_by_status(bookings: Iterable[Booking]) -> Dict[str, List[Booking]]:
    groups = {status: [] for status in (BOOKING_CONFIRMED, BOOKING_CANCELLED, BOOKING_PENDING)}
    for booking in bookings:
        groups.setdefault(booking.status, []).append(booking)
    return groups


def compute_booking_stats(bookings: List[Booking], today: date) -> BookingStats:
    """
    Aggregate a booking history.

    Spend includes cancelled bookings. Items dated today count as upcoming;
    items without a date count as neither upcoming nor past.
    """
    stats = BookingStats(total_bookings=len(bookings))

    for booking in bookings:
        stats.total_spent += booking.summary.total_amount

        if booking.status == BOOKING_CONFIRMED:
            stats.confirmed_count += 1
        elif booking.status == BOOKING_CANCELLED:
            stats.cancelled_count += 1

        for item in booking.items:
            class_type = item.class_type or UNKNOWN_CLASS_TYPE
            stats.class_type_stats[class_type] = stats.class_type_stats.get(class_type, 0) + 1

            if item.date:
                if item.date >= today:
                    stats.upcoming_classes += 1
                else:
                    stats.past_classes += 1

        if booking.booking_date:
            month = booking.booking_date.strftime('%Y-%m')
            stats.monthly_spending[month] = (
                stats.monthly_spending.get(month, 0) + booking.summary.total_amount
            )

    max_count = 0
    for class_type, count in stats.class_type_stats.items():
        if count > max_count:
            max_count = count
            stats.favorite_class_type = class_type

    if stats.total_bookings:
        stats.average_per_booking = stats.total_spent / stats.total_bookings
    return stats


class BookingService:
    """
    Submits, reads, and cancels bookings.

    Args:
        store: DocumentStore used for every read and write
        enforce_capacity: Re-check free spots inside the submit transaction.
            Defaults to the ENFORCE_CAPACITY setting.
    """

    def __init__(self, store: DocumentStore, enforce_capacity: Optional[bool] = None):
        self.store = store
        if enforce_capacity is None:
            enforce_capacity = studio_setting('ENFORCE_CAPACITY')
        self.enforce_capacity = enforce_capacity

    def submit_booking(
        self,
        user_id: str,
        user_email: str,
        cart_items: List[CartItemInput],
        payment_details: Optional[Any] = None
    ) -> Booking:
        """
        Convert cart rows into one confirmed booking.

        Inside a single transaction: every referenced schedule and course is
        re-read, the booking is created, persisted cart rows are flipped to
        booked, and a roster entry is appended to each referenced schedule.

        Args:
            user_id: Booking owner
            user_email: Owner's email, copied into the booking and rosters
            cart_items: CartItem records or cart document dicts
            payment_details: Opaque payment payload stored as-is

        Returns:
            The created Booking

        Raises:
            ValidationError: If required information is missing or an item is malformed
                or a cart row is listed twice
            Unauthorized: If a cart row belongs to another user
            ReferentialIntegrityError: If a schedule, course, or cart row no longer exists
            InvalidState: If a cart row was already booked
            CapacityExceededError: If capacity is enforced and a schedule is full
            TransientStoreError: If the store kept failing; nothing was written
        """
        if not user_id or not user_email or not cart_items:
            raise errors.ValidationError("Missing required booking information")

        items = [_coerce_cart_item(item, user_id, index) for index, item in enumerate(cart_items, 1)]
        for item in items:
            if item.user_id != user_id:
                raise errors.Unauthorized(f"Cart item {item.id} belongs to another user")

        cart_ids = [item.id for item in items if item.id]
        if len(cart_ids) != len(set(cart_ids)):
            raise errors.ValidationError("The same cart item was submitted more than once")

        booking = self.store.run_transaction(
            lambda tx: self._submit_in_transaction(tx, user_id, user_email, items, payment_details)
        )

        logger.info(
            "Booking %s confirmed for user %s: %d item(s), total %.2f",
            booking.id, user_id, booking.summary.total_items, booking.summary.total_amount
        )
        return booking

    def _submit_in_transaction(
        self,
        tx: Transaction,
        user_id: str,
        user_email: str,
        items: List[CartItem],
        payment_details: Optional[Any]
    ) -> Booking:
        schedules = self._read_schedules(tx, items)
        courses = self._read_courses(tx, items)
        self._check_cart_rows(tx, items)
        if self.enforce_capacity:
            _check_capacity(items, schedules, courses)

        now = timezone.now()
        booking_items = [item.to_booking_item() for item in items]
        booking = Booking(
            id=None,
            user_id=user_id,
            user_email=user_email,
            items=booking_items,
            summary=BookingSummary.from_items(booking_items),
            status=BOOKING_CONFIRMED,
            booking_date=now,
            payment_details=payment_details,
            created_at=now,
            updated_at=now,
        )
        booking.id = tx.create(BOOKINGS, booking.to_store())

        stamp = format_timestamp(now)
        for item in items:
            if item.id:
                tx.update(CART, item.id, {
                    'status': CART_BOOKED,
                    'bookingId': booking.id,
                    'bookedAt': stamp,
                    'updatedAt': stamp,
                })

        for item in items:
            schedules[item.instance_id].roster.append(RosterEntry(
                booking_id=booking.id,
                user_id=user_id,
                user_email=user_email,
                booked_at=now,
                quantity=item.quantity,
            ))

        for schedule in schedules.values():
            tx.update(SCHEDULES, schedule.id, {
                'bookings': [entry.to_store() for entry in schedule.roster],
                'lastUpdated': stamp,
            })

        return booking

    def _read_schedules(self, tx: Transaction, items: List[CartItem]) -> Dict[str, ScheduleInstance]:
        schedules = {}
        for item in items:
            if item.instance_id in schedules:
                continue
            data = tx.get(SCHEDULES, item.instance_id)
            if data is None:
                raise errors.ReferentialIntegrityError(
                    f"Schedule {item.instance_id} no longer exists"
                )
            schedules[item.instance_id] = ScheduleInstance.from_store(item.instance_id, data)
        return schedules

    def _read_courses(self, tx: Transaction, items: List[CartItem]) -> Dict[str, Dict[str, Any]]:
        courses = {}
        for item in items:
            if item.course_id in courses:
                continue
            data = tx.get(COURSES, item.course_id)
            if data is None:
                raise errors.ReferentialIntegrityError(f"Class {item.course_id} no longer exists")
            courses[item.course_id] = data
        return courses

    def _check_cart_rows(self, tx: Transaction, items: List[CartItem]) -> None:
        """Persisted cart rows must still exist and still be pending."""
        for item in items:
            if not item.id:
                continue
            data = tx.get(CART, item.id)
            if data is None:
                raise errors.ReferentialIntegrityError(f"Cart item {item.id} no longer exists")
            if data.get('status', CART_PENDING) != CART_PENDING:
                raise errors.InvalidState(f"Cart item {item.id} has already been booked")

    def cancel_booking(self, booking_id: str, user_id: str) -> Booking:
        """
        Cancel a booking and release its roster entries.

        Returns:
            The cancelled Booking

        Raises:
            NotFound: If the booking does not exist
            Unauthorized: If user_id does not own the booking
            InvalidState: If the booking is already cancelled
        """
        booking = self.store.run_transaction(
            lambda tx: self._cancel_in_transaction(tx, booking_id, user_id)
        )
        logger.info("Booking %s cancelled by user %s", booking_id, user_id)
        return booking

    def _cancel_in_transaction(self, tx: Transaction, booking_id: str, user_id: str) -> Booking:
        data = tx.get(BOOKINGS, booking_id)
        if data is None:
            raise errors.NotFound("Booking not found")

        booking = Booking.from_store(booking_id, data)
        if booking.user_id != user_id:
            raise errors.Unauthorized("Unauthorized to cancel this booking")
        if booking.is_cancelled:
            raise errors.InvalidState("Booking is already cancelled")

        rosters = {}
        for schedule_id in booking.schedule_ids:
            schedule_data = tx.get(SCHEDULES, schedule_id)
            if schedule_data is None:
                logger.warning("Schedule %s of booking %s no longer exists", schedule_id, booking_id)
                continue
            rosters[schedule_id] = schedule_data.get('bookings') or []

        now = timezone.now()
        stamp = format_timestamp(now)
        tx.update(BOOKINGS, booking_id, {
            'status': BOOKING_CANCELLED,
            'cancelledAt': stamp,
            'updatedAt': stamp,
        })
        for schedule_id, roster in rosters.items():
            tx.update(SCHEDULES, schedule_id, {
                'bookings': [entry for entry in roster if entry.get('bookingId') != booking_id],
                'lastUpdated': stamp,
            })

        booking.status = BOOKING_CANCELLED
        booking.cancelled_at = now
        booking.updated_at = now
        return booking

    def get_booking(self, booking_id: str, user_id: Optional[str] = None) -> Booking:
        """
        Get a booking by id.

        Raises:
            NotFound: If the booking does not exist
            Unauthorized: If user_id is given and does not own the booking
        """
        data = self.store.get(BOOKINGS, booking_id)
        if data is None:
            raise errors.NotFound("Booking not found")

        booking = Booking.from_store(booking_id, data)
        if user_id is not None and booking.user_id != user_id:
            raise errors.Unauthorized("Unauthorized to access this booking")
        return booking

    def list_bookings(self, user_id: str) -> List[Booking]:
        """List a user's bookings, most recent first."""
        rows = self.store.query(
            BOOKINGS,
            where=[('userId', '==', user_id)],
            order_by=[('bookingDate', 'desc')]
        )
        return parse_rows(rows, Booking.from_store, 'booking')

    def get_booking_history(
        self,
        user_id: str,
        status: Optional[str] = None,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None
    ) -> List[Booking]:
        """
        List a user's bookings filtered by status and booking date.

        Bookings without a booking date are dropped when a date bound is given.

        Raises:
            ValidationError: If status is unknown
        """
        if status is not None and status not in BOOKING_STATUSES:
            raise errors.ValidationError(f"Unknown booking status: {status}")

        history = []
        for booking in self.list_bookings(user_id):
            if status and booking.status != status:
                continue
            if from_date or to_date:
                if booking.booking_date is None:
                    continue
                if from_date and booking.booking_date < from_date:
                    continue
                if to_date and booking.booking_date > to_date:
                    continue
            history.append(booking)
        return history

    def get_booking_stats(self, user_id: str, today: Optional[date] = None) -> BookingStats:
        return compute_booking_stats(self.list_bookings(user_id), today or timezone.localdate())

    def is_cancellable(self, booking: Booking, today: Optional[date] = None) -> bool:
        return is_cancellable(booking, today)


def _coerce_cart_item(item: CartItemInput, user_id: str, position: int) -> CartItem:
    """Validate one submitted cart row and return it as a CartItem."""
    if isinstance(item, CartItem):
        doc_id, data = item.id, item.to_store()
    elif isinstance(item, dict):
        data = dict(item)
        doc_id = data.pop('id', None)
        data.setdefault('userId', user_id)
    else:
        raise errors.ValidationError(f"Item {position} is not a cart item")

    data['status'] = CART_PENDING
    try:
        return CartItem.from_store(doc_id, data)
    except errors.ValidationError as exc:
        raise errors.ValidationError(f"Item {position}: {exc.message}", errors=exc.errors) from exc


def _check_capacity(
    items: List[CartItem],
    schedules: Dict[str, ScheduleInstance],
    courses: Dict[str, Dict[str, Any]]
) -> None:
    """Fail when the items claim more spots than their schedules have left."""
    claimed = defaultdict(int)
    for item in items:
        schedule = schedules[item.instance_id]
        course = Course.from_store(item.course_id, courses[item.course_id])
        availability = compute_availability(schedule, course)

        claimed[schedule.id] += item.quantity
        if claimed[schedule.id] > availability.available_spots:
            raise errors.CapacityExceededError(
                f"Only {availability.available_spots} spot(s) left for schedule {schedule.id}"
            )
