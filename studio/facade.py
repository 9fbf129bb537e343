"""
Integration facade over the studio services.

Every public method returns a ``Result`` envelope instead of raising, so
presentation layers only ever branch on ``result.success``. Data in a
successful result is JSON-ready (camelCase dicts, ISO dates).
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, Union

from django.utils import timezone

from . import errors
from .bookings import BookingService, get_upcoming_classes, is_cancellable
from .cart import CartService
from .catalog import CatalogService
from .conf import load_notifier, studio_setting
from .documents import CartItem
from .notifications import BookingNotifier
from .store import DocumentStore
from .types import (
    CLASS_TYPES,
    DAYS_OF_WEEK,
    MAX_DURATION_MINUTES,
    SORT_BY_DAY,
    TIME_SLOTS,
    CourseFilter,
    Identity,
)


logger = logging.getLogger(__name__)

USER_MESSAGES = {
    'permission-denied': 'You do not have permission for this action. Please sign in.',
    'not-found': 'The requested data could not be found.',
    'unavailable': 'Service is temporarily unavailable. Please try again.',
    'unauthenticated': 'Please sign in to continue.',
    'already-exists': 'This item already exists.',
    'resource-exhausted': 'Too many requests. Please wait and try again.',
    'cancelled': 'Operation was cancelled.',
    'deadline-exceeded': 'Operation timed out. Please try again.',
}
DEFAULT_USER_MESSAGE = 'An unexpected error occurred'


@dataclass
class ErrorInfo:
    """Description of a failed operation."""
    kind: str
    code: str
    message: str
    user_message: str
    context: str
    retryable: bool = False
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=timezone.now)

    @classmethod
    def from_exception(cls, exc: errors.StudioError, context: str) -> 'ErrorInfo':
        return cls(
            kind=exc.kind,
            code=exc.code,
            message=exc.message,
            user_message=USER_MESSAGES.get(exc.code) or exc.message or DEFAULT_USER_MESSAGE,
            context=context,
            retryable=exc.retryable,
            details=getattr(exc, 'errors', None) or {},
        )

    def to_dict(self):
        return {
            'kind': self.kind,
            'code': self.code,
            'message': self.message,
            'userMessage': self.user_message,
            'context': self.context,
            'retryable': self.retryable,
            'details': self.details,
            'timestamp': self.timestamp.isoformat(),
        }


@dataclass
class Result:
    """Envelope returned by every facade operation."""
    success: bool
    data: Any = None
    error: Optional[ErrorInfo] = None

    @classmethod
    def ok(cls, data: Any = None) -> 'Result':
        return cls(success=True, data=data)

    @classmethod
    def failure(cls, error: ErrorInfo) -> 'Result':
        return cls(success=False, error=error)

    def to_dict(self):
        return {
            'success': self.success,
            'data': self.data,
            'error': self.error.to_dict() if self.error else None,
        }


class YogaStudioAPI:
    """
    One entry point for browsing, cart, and booking operations.

    Args:
        store: DocumentStore shared by the services; a default-database
            store when omitted
        notifier: BookingNotifier for confirmations; the NOTIFIER setting
            when omitted
        enforce_capacity: Passed to BookingService
    """

    def __init__(
        self,
        store: Optional[DocumentStore] = None,
        notifier: Optional[BookingNotifier] = None,
        enforce_capacity: Optional[bool] = None
    ):
        self.store = store or DocumentStore()
        self.catalog = CatalogService(self.store)
        self.cart = CartService(self.store)
        self.bookings = BookingService(self.store, enforce_capacity=enforce_capacity)
        self.notifier = notifier if notifier is not None else load_notifier()

    def _run(self, context: str, operation: Callable[[], Any]) -> Result:
        """Run an operation and wrap its outcome in a Result."""
        try:
            return Result.ok(operation())
        except errors.StudioError as exc:
            logger.warning("%s failed: [%s] %s", context, exc.code, exc.message)
            return Result.failure(ErrorInfo.from_exception(exc, context))
        except Exception as exc:
            logger.exception("%s failed unexpectedly", context)
            return Result.failure(ErrorInfo.from_exception(errors.UnknownError(str(exc)), context))

    # Catalog

    def get_course(self, course_id: str) -> Result:
        return self._run('get_course', lambda: self.catalog.get_course(course_id).to_dict())

    def list_courses(
        self,
        course_filter: Optional[CourseFilter] = None,
        sort_by: str = SORT_BY_DAY
    ) -> Result:
        return self._run('list_courses', lambda: [
            course.to_dict() for course in self.catalog.list_courses(course_filter, sort_by)
        ])

    def get_schedule(self, schedule_id: str) -> Result:
        return self._run('get_schedule', lambda: self.catalog.get_schedule(schedule_id).to_dict())

    def list_schedules_for_course(self, course_id: str) -> Result:
        return self._run('list_schedules_for_course', lambda: [
            schedule.to_dict() for schedule in self.catalog.list_schedules_for_course(course_id)
        ])

    def list_available_schedules(self, as_of: Optional[date] = None) -> Result:
        return self._run('list_available_schedules', lambda: [
            schedule.to_dict() for schedule in self.catalog.list_available_schedules(as_of)
        ])

    def list_schedules_with_courses(
        self,
        start: Optional[date] = None,
        end: Optional[date] = None
    ) -> Result:
        return self._run('list_schedules_with_courses', lambda: [
            details.to_dict() for details in self.catalog.list_schedules_with_courses(start, end)
        ])

    def search_schedules_by_teacher(self, teacher_name: str) -> Result:
        return self._run('search_schedules_by_teacher', lambda: [
            schedule.to_dict() for schedule in self.catalog.search_schedules_by_teacher(teacher_name)
        ])

    def check_availability(self, course_id: str, schedule_id: str) -> Result:
        return self._run('check_availability', lambda: (
            self.catalog.check_availability(course_id, schedule_id).to_dict()
        ))

    # Cart

    def add_to_cart(
        self,
        user_id: str,
        item: Union[CartItem, Dict[str, Any]],
        check_availability: bool = True
    ) -> Result:
        """
        Add an item to a user's cart.

        Unless ``check_availability`` is False, the schedule must be in the
        future and have at least one free spot.
        """
        def operation():
            if check_availability:
                course_id, schedule_id = _cart_item_references(item)
                availability = self.catalog.check_availability(course_id, schedule_id)
                if not availability.available:
                    raise errors.InvalidState("This class is fully booked")
            return self.cart.add_to_cart(user_id, item).to_dict()

        return self._run('add_to_cart', operation)

    def add_schedule_to_cart(self, user_id: str, schedule_id: str, quantity: int = 1) -> Result:
        """Add a schedule to the cart, filling the item from the catalog."""
        def operation():
            schedule = self.catalog.get_schedule(schedule_id)
            course = self.catalog.get_course(schedule.course_id)
            availability = self.catalog.check_availability(course.id, schedule.id)
            if not availability.available:
                raise errors.InvalidState("This class is fully booked")
            item = CartItem.from_course_and_schedule(user_id, course, schedule, quantity=quantity)
            return self.cart.add_to_cart(user_id, item).to_dict()

        return self._run('add_schedule_to_cart', operation)

    def get_cart(self, user_id: str) -> Result:
        """Get the pending cart rows together with their summary."""
        def operation():
            items = self.cart.get_cart(user_id)
            return {
                'items': [item.to_dict() for item in items],
                'summary': self.cart.get_cart_summary(user_id).to_dict(),
            }

        return self._run('get_cart', operation)

    def update_cart_quantity(self, user_id: str, cart_item_id: str, quantity: int) -> Result:
        def operation():
            cart_item = self.cart.update_quantity(cart_item_id, quantity, user_id=user_id)
            return cart_item.to_dict() if cart_item else None

        return self._run('update_cart_quantity', operation)

    def remove_from_cart(self, user_id: str, cart_item_id: str) -> Result:
        return self._run('remove_from_cart', lambda: (
            self.cart.remove_from_cart(cart_item_id, user_id=user_id)
        ))

    def clear_cart(self, user_id: str) -> Result:
        return self._run('clear_cart', lambda: {'removed': self.cart.clear_cart(user_id)})

    def get_cart_summary(self, user_id: str) -> Result:
        return self._run('get_cart_summary', lambda: self.cart.get_cart_summary(user_id).to_dict())

    # Bookings

    def submit_booking(
        self,
        user_id: str,
        user_email: str,
        cart_items: List[Union[CartItem, Dict[str, Any]]],
        payment_details: Optional[Any] = None,
        send_confirmation: bool = True
    ) -> Result:
        """
        Book the given cart rows and send a confirmation.

        A confirmation failure is logged; the booking result is unaffected.
        """
        def operation():
            booking = self.bookings.submit_booking(user_id, user_email, cart_items, payment_details)
            if send_confirmation:
                self._send_confirmation(booking)
            return booking.to_dict()

        return self._run('submit_booking', operation)

    def checkout(
        self,
        identity: Identity,
        cart_item_ids: Optional[List[str]] = None,
        payment_details: Optional[Any] = None
    ) -> Result:
        """
        Book the caller's pending cart, or the listed rows of it.

        Raises nothing; an empty selection fails with a validation error.
        """
        def operation():
            items = self.cart.get_cart(identity.uid)
            if cart_item_ids is not None:
                wanted = set(cart_item_ids)
                missing = wanted - {item.id for item in items}
                if missing:
                    raise errors.NotFound(
                        f"Cart item(s) not found: {', '.join(sorted(missing))}"
                    )
                items = [item for item in items if item.id in wanted]
            if not items:
                raise errors.ValidationError("Your cart is empty")

            booking = self.bookings.submit_booking(identity.uid, identity.email, items, payment_details)
            self._send_confirmation(booking)
            return booking.to_dict()

        return self._run('checkout', operation)

    def _send_confirmation(self, booking) -> None:
        if not self.notifier or not studio_setting('SEND_CONFIRMATIONS'):
            return
        try:
            self.notifier.send_confirmation(booking)
        except Exception:
            logger.warning("Booking confirmation for %s failed", booking.id, exc_info=True)

    def list_bookings(self, user_id: str, status: Optional[str] = None) -> Result:
        def operation():
            bookings = self.bookings.list_bookings(user_id)
            if status:
                bookings = [booking for booking in bookings if booking.status == status]
            return [booking.to_dict() for booking in bookings]

        return self._run('list_bookings', operation)

    def get_booking(self, booking_id: str, user_id: Optional[str] = None) -> Result:
        return self._run('get_booking', lambda: (
            self.bookings.get_booking(booking_id, user_id=user_id).to_dict()
        ))

    def get_booking_history(
        self,
        user_id: str,
        status: Optional[str] = None,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None
    ) -> Result:
        return self._run('get_booking_history', lambda: [
            booking.to_dict()
            for booking in self.bookings.get_booking_history(user_id, status, from_date, to_date)
        ])

    def get_upcoming_classes(self, user_id: str) -> Result:
        return self._run('get_upcoming_classes', lambda: [
            upcoming.to_dict()
            for upcoming in get_upcoming_classes(self.bookings.list_bookings(user_id))
        ])

    def cancel_booking(self, booking_id: str, user_id: str, check_cancellable: bool = True) -> Result:
        """
        Cancel a booking.

        Unless ``check_cancellable`` is False, a booking without any future
        class is refused before the cancellation transaction runs.
        """
        def operation():
            if check_cancellable:
                booking = self.bookings.get_booking(booking_id, user_id=user_id)
                if not is_cancellable(booking):
                    raise errors.InvalidState("This booking cannot be cancelled")
            return self.bookings.cancel_booking(booking_id, user_id).to_dict()

        return self._run('cancel_booking', operation)

    def get_booking_stats(self, user_id: str) -> Result:
        return self._run('get_booking_stats', lambda: self.bookings.get_booking_stats(user_id).to_dict())

    # Utilities

    def get_app_config(self) -> Result:
        return Result.ok({
            'classTypes': list(CLASS_TYPES),
            'daysOfWeek': list(DAYS_OF_WEEK),
            'timeSlots': list(TIME_SLOTS),
            'maxDurationMinutes': MAX_DURATION_MINUTES,
            'enforceCapacity': self.bookings.enforce_capacity,
        })

    def health_check(self) -> Result:
        """
        Probe the catalog reads.

        The result is always successful; the report inside says whether
        each dependency answered.
        """
        checks = {
            'courses': (self.catalog.list_courses, 'classes available'),
            'schedules': (self.catalog.list_available_schedules, 'schedules available'),
        }
        services = {}
        for name, (probe, label) in checks.items():
            try:
                count = len(probe())
            except errors.StudioError as exc:
                logger.warning("Health check of %s failed: %s", name, exc.message)
                services[name] = {'status': 'ERROR', 'message': exc.message}
            except Exception as exc:
                logger.exception("Health check of %s failed unexpectedly", name)
                services[name] = {'status': 'ERROR', 'message': str(exc)}
            else:
                services[name] = {'status': 'OK', 'count': count, 'message': f"{count} {label}"}

        healthy = all(service['status'] == 'OK' for service in services.values())
        return Result.ok({
            'status': 'HEALTHY' if healthy else 'DEGRADED',
            'services': services,
            'timestamp': timezone.now().isoformat(),
        })


def _cart_item_references(item: Union[CartItem, Dict[str, Any]]):
    """Return the (course id, schedule id) a cart item points at."""
    if isinstance(item, CartItem):
        course_id, schedule_id = item.course_id, item.instance_id
    else:
        course_id, schedule_id = item.get('courseId'), item.get('instanceId')
    if not course_id or not schedule_id:
        raise errors.ValidationError("Course ID and schedule ID are required")
    return course_id, schedule_id
