"""
Tests for the booking and reconciliation engine.

Tests cover:
- Submission: booking document, consumed cart rows, roster entries
- Referential integrity and validation failures leaving no trace
- Atomicity under a failing commit
- Optional capacity enforcement
- Cancellation and its symmetry with submission
- History, upcoming classes and statistics
"""

from datetime import datetime, timedelta, timezone as dt_timezone
from unittest import mock

from django.db import DatabaseError
from django.test import TestCase
from django.utils import timezone

from studio import errors
from studio.bookings import (
    BookingService,
    compute_booking_stats,
    get_upcoming_classes,
    group_bookings_by_status,
    is_cancellable,
)
from studio.catalog import CatalogService
from studio.documents import Booking, BookingItem, BookingSummary
from studio.store import BOOKINGS, CART, COURSES, SCHEDULES, DocumentStore

from .helpers import cart_item_data, create_cart_row, create_course, create_schedule, days_from_today


class BookingTestCase(TestCase):
    """Seeds one course with one future schedule and a pending cart row."""

    def setUp(self):
        self.store = DocumentStore()
        self.bookings = BookingService(self.store, enforce_capacity=False)
        self.catalog = CatalogService(self.store)

        self.day = days_from_today(7)
        self.course = create_course(self.store, capacity=10)
        self.schedule = create_schedule(self.store, self.course, self.day)
        self.row = create_cart_row(self.store, 'user-1', self.course, self.schedule, self.day)

    def cart_rows(self, *row_ids):
        return [{'id': row_id, **self.store.get(CART, row_id)} for row_id in row_ids]

    def roster(self, schedule_id=None):
        return self.store.get(SCHEDULES, schedule_id or self.schedule)['bookings']


class SubmitBookingTests(BookingTestCase):
    """Test submit_booking."""

    def test_submit_creates_confirmed_booking(self):
        booking = self.bookings.submit_booking(
            'user-1', 'user1@example.com', self.cart_rows(self.row), {'method': 'card'}
        )

        stored = self.store.get(BOOKINGS, booking.id)
        self.assertEqual(stored['status'], 'confirmed')
        self.assertEqual(stored['userEmail'], 'user1@example.com')
        self.assertEqual(stored['paymentDetails'], {'method': 'card'})
        self.assertEqual(stored['summary'], {'totalAmount': 15.0, 'totalItems': 1, 'totalQuantity': 1})
        self.assertEqual(stored['items'][0]['instanceId'], self.schedule)
        self.assertEqual(stored['items'][0]['date'], self.day.isoformat())
        self.assertIsNone(stored['cancelledAt'])
        self.assertEqual(stored['bookingDate'], stored['createdAt'])

    def test_submit_consumes_cart_rows(self):
        booking = self.bookings.submit_booking('user-1', 'user1@example.com', self.cart_rows(self.row))

        row = self.store.get(CART, self.row)
        self.assertEqual(row['status'], 'booked')
        self.assertEqual(row['bookingId'], booking.id)
        self.assertIsNotNone(row['bookedAt'])

    def test_submit_appends_roster_entries(self):
        second_row = create_cart_row(
            self.store, 'user-1', self.course, self.schedule, self.day, quantity=2
        )

        booking = self.bookings.submit_booking(
            'user-1', 'user1@example.com', self.cart_rows(self.row, second_row)
        )

        roster = self.roster()
        self.assertEqual([entry['bookingId'] for entry in roster], [booking.id, booking.id])
        self.assertEqual([entry['quantity'] for entry in roster], [1, 2])
        self.assertEqual(roster[0]['userEmail'], 'user1@example.com')

    def test_availability_drops_by_booked_quantity(self):
        row = create_cart_row(self.store, 'user-2', self.course, self.schedule, self.day, quantity=3)

        self.bookings.submit_booking('user-2', 'user2@example.com', self.cart_rows(row))

        availability = self.catalog.check_availability(self.course, self.schedule)
        self.assertEqual(availability.available_spots, 7)
        self.assertEqual(availability.booked, 3)

    def test_submit_items_without_cart_id(self):
        item = cart_item_data(self.course, self.schedule, self.day)

        booking = self.bookings.submit_booking('user-1', 'user1@example.com', [item])

        self.assertEqual(booking.summary.total_items, 1)
        self.assertEqual(self.store.get(CART, self.row)['status'], 'pending')

    def test_missing_booking_information(self):
        for user_id, email, items in (
            ('', 'user1@example.com', self.cart_rows(self.row)),
            ('user-1', '', self.cart_rows(self.row)),
            ('user-1', 'user1@example.com', []),
        ):
            with self.subTest(user_id=user_id, email=email):
                with self.assertRaises(errors.ValidationError):
                    self.bookings.submit_booking(user_id, email, items)

        self.assertEqual(self.store.query(BOOKINGS), [])

    def test_malformed_item_is_rejected_before_any_write(self):
        items = self.cart_rows(self.row)
        items[0]['price'] = None

        with mock.patch.object(DocumentStore, 'run_transaction') as run_transaction:
            with self.assertRaises(errors.ValidationError):
                self.bookings.submit_booking('user-1', 'user1@example.com', items)

        run_transaction.assert_not_called()

    def test_foreign_cart_row_is_unauthorized(self):
        with self.assertRaises(errors.Unauthorized):
            self.bookings.submit_booking('user-2', 'user2@example.com', self.cart_rows(self.row))

        self.assertEqual(self.store.query(BOOKINGS), [])
        self.assertEqual(self.store.get(CART, self.row)['status'], 'pending')

    def test_deleted_schedule_fails_without_changes(self):
        items = self.cart_rows(self.row)
        self.store.delete(SCHEDULES, self.schedule)

        with self.assertRaises(errors.ReferentialIntegrityError) as ctx:
            self.bookings.submit_booking('user-1', 'user1@example.com', items)

        self.assertIn(self.schedule, ctx.exception.message)
        self.assertEqual(self.store.query(BOOKINGS), [])
        self.assertEqual(self.store.get(CART, self.row)['status'], 'pending')

    def test_deleted_course_fails_without_changes(self):
        items = self.cart_rows(self.row)
        self.store.delete(COURSES, self.course)

        with self.assertRaises(errors.ReferentialIntegrityError):
            self.bookings.submit_booking('user-1', 'user1@example.com', items)

        self.assertEqual(self.store.query(BOOKINGS), [])
        self.assertEqual(self.roster(), [])

    def test_already_booked_cart_row(self):
        items = self.cart_rows(self.row)
        self.bookings.submit_booking('user-1', 'user1@example.com', items)

        with self.assertRaises(errors.InvalidState):
            self.bookings.submit_booking('user-1', 'user1@example.com', items)

        self.assertEqual(len(self.store.query(BOOKINGS)), 1)
        self.assertEqual(len(self.roster()), 1)

    def test_same_cart_row_twice_is_rejected(self):
        items = self.cart_rows(self.row, self.row)

        with self.assertRaises(errors.ValidationError):
            self.bookings.submit_booking('user-1', 'user1@example.com', items)

        self.assertEqual(self.store.query(BOOKINGS), [])
        self.assertEqual(self.store.get(CART, self.row)['status'], 'pending')
        self.assertEqual(self.roster(), [])

    def test_failing_commit_leaves_no_partial_state(self):
        self.store.update(SCHEDULES, self.schedule, {
            'bookings': [{'bookingId': 'earlier', 'userId': 'user-9', 'quantity': 1}],
        })
        items = self.cart_rows(self.row)
        roster_before = self.roster()
        row_before = self.store.get(CART, self.row)
        original = DocumentStore._apply_write

        def fail_on_roster(store, kind, collection, doc_id, payload):
            if collection == SCHEDULES:
                raise DatabaseError("disk I/O error")
            return original(store, kind, collection, doc_id, payload)

        with mock.patch.object(DocumentStore, '_apply_write', autospec=True, side_effect=fail_on_roster):
            with self.assertRaises(errors.UnknownError):
                self.bookings.submit_booking('user-1', 'user1@example.com', items)

        self.assertEqual(self.store.query(BOOKINGS), [])
        self.assertEqual(self.store.get(CART, self.row)['status'], 'pending')
        self.assertEqual(self.store.get(CART, self.row), row_before)
        self.assertNotIn('bookingId', self.store.get(CART, self.row))
        self.assertEqual(self.roster(), roster_before)


class CapacityEnforcementTests(BookingTestCase):
    """Test the opt-in capacity check at submission."""

    def setUp(self):
        super().setUp()
        self.small_course = create_course(self.store, capacity=2)
        self.small_schedule = create_schedule(self.store, self.small_course, self.day, bookings=[
            {'bookingId': 'earlier', 'userId': 'user-9', 'quantity': 1},
        ])

    def rows(self, *quantities):
        return self.cart_rows(*[
            create_cart_row(
                self.store, 'user-1', self.small_course, self.small_schedule, self.day, quantity=quantity
            )
            for quantity in quantities
        ])

    def test_overbooking_is_rejected_when_enforced(self):
        service = BookingService(self.store, enforce_capacity=True)

        with self.assertRaises(errors.CapacityExceededError):
            service.submit_booking('user-1', 'user1@example.com', self.rows(2))

        self.assertEqual(len(self.roster(self.small_schedule)), 1)

    def test_claims_within_one_submission_add_up(self):
        service = BookingService(self.store, enforce_capacity=True)

        with self.assertRaises(errors.CapacityExceededError):
            service.submit_booking('user-1', 'user1@example.com', self.rows(1, 1))

        self.assertEqual(self.store.query(BOOKINGS), [])

    def test_last_spot_can_be_booked_when_enforced(self):
        service = BookingService(self.store, enforce_capacity=True)

        service.submit_booking('user-1', 'user1@example.com', self.rows(1))

        self.assertEqual(len(self.roster(self.small_schedule)), 2)

    def test_overbooking_is_allowed_by_default(self):
        self.bookings.submit_booking('user-1', 'user1@example.com', self.rows(5))

        availability = self.catalog.check_availability(self.small_course, self.small_schedule)
        self.assertEqual(availability.available_spots, 0)
        self.assertEqual(availability.booked, 6)


class CancelBookingTests(BookingTestCase):
    """Test cancel_booking."""

    def setUp(self):
        super().setUp()
        other_row = create_cart_row(self.store, 'user-2', self.course, self.schedule, self.day)
        self.other_booking = self.bookings.submit_booking(
            'user-2', 'user2@example.com', self.cart_rows(other_row)
        )
        self.roster_before = self.roster()
        self.booking = self.bookings.submit_booking(
            'user-1', 'user1@example.com', self.cart_rows(self.row)
        )

    def test_cancel_restores_roster(self):
        cancelled = self.bookings.cancel_booking(self.booking.id, 'user-1')

        self.assertEqual(cancelled.status, 'cancelled')
        self.assertIsNotNone(cancelled.cancelled_at)
        self.assertEqual(self.roster(), self.roster_before)

        stored = self.store.get(BOOKINGS, self.booking.id)
        self.assertEqual(stored['status'], 'cancelled')
        self.assertIsNotNone(stored['cancelledAt'])

    def test_cancel_keeps_consumed_cart_rows(self):
        self.bookings.cancel_booking(self.booking.id, 'user-1')

        self.assertEqual(self.store.get(CART, self.row)['status'], 'booked')

    def test_double_cancel_writes_nothing(self):
        self.bookings.cancel_booking(self.booking.id, 'user-1')

        with mock.patch.object(DocumentStore, '_apply_write') as apply_write:
            with self.assertRaises(errors.InvalidState):
                self.bookings.cancel_booking(self.booking.id, 'user-1')

        apply_write.assert_not_called()

    def test_cancel_by_other_user_writes_nothing(self):
        with mock.patch.object(DocumentStore, '_apply_write') as apply_write:
            with self.assertRaises(errors.Unauthorized):
                self.bookings.cancel_booking(self.booking.id, 'user-2')

        apply_write.assert_not_called()
        self.assertEqual(self.store.get(BOOKINGS, self.booking.id)['status'], 'confirmed')

    def test_cancel_missing_booking(self):
        with self.assertRaises(errors.NotFound):
            self.bookings.cancel_booking('missing', 'user-1')

    def test_cancel_with_vanished_schedule(self):
        self.store.delete(SCHEDULES, self.schedule)

        cancelled = self.bookings.cancel_booking(self.booking.id, 'user-1')

        self.assertEqual(cancelled.status, 'cancelled')


class BookingReadTests(BookingTestCase):
    """Test booking lookups and history."""

    def setUp(self):
        super().setUp()
        self.first = self.bookings.submit_booking('user-1', 'user1@example.com', self.cart_rows(self.row))
        second_row = create_cart_row(self.store, 'user-1', self.course, self.schedule, self.day)
        self.second = self.bookings.submit_booking('user-1', 'user1@example.com', self.cart_rows(second_row))
        self.bookings.cancel_booking(self.first.id, 'user-1')

    def test_get_booking(self):
        booking = self.bookings.get_booking(self.second.id, user_id='user-1')

        self.assertEqual(booking.id, self.second.id)
        self.assertEqual(booking.items[0].date, self.day)

    def test_get_booking_of_other_user(self):
        with self.assertRaises(errors.Unauthorized):
            self.bookings.get_booking(self.second.id, user_id='user-2')
        with self.assertRaises(errors.NotFound):
            self.bookings.get_booking('missing')

    def test_list_bookings_newest_first(self):
        bookings = self.bookings.list_bookings('user-1')

        self.assertEqual([booking.id for booking in bookings], [self.second.id, self.first.id])
        self.assertEqual(self.bookings.list_bookings('user-2'), [])

    def test_history_by_status(self):
        cancelled = self.bookings.get_booking_history('user-1', status='cancelled')

        self.assertEqual([booking.id for booking in cancelled], [self.first.id])

    def test_history_by_booking_date(self):
        tomorrow = timezone.now() + timedelta(days=1)

        self.assertEqual(self.bookings.get_booking_history('user-1', from_date=tomorrow), [])
        self.assertEqual(len(self.bookings.get_booking_history('user-1', to_date=tomorrow)), 2)

    def test_history_with_unknown_status(self):
        with self.assertRaises(errors.ValidationError):
            self.bookings.get_booking_history('user-1', status='refunded')

    def test_booking_stats(self):
        stats = self.bookings.get_booking_stats('user-1')

        self.assertEqual(stats.total_bookings, 2)
        self.assertEqual(stats.total_spent, 30.0)
        self.assertEqual(stats.confirmed_count, 1)
        self.assertEqual(stats.cancelled_count, 1)
        self.assertEqual(stats.upcoming_classes, 2)
        self.assertEqual(stats.average_per_booking, 15.0)


def make_booking(booking_id, status='confirmed', dates=(), class_types=None, amount=10.0, booked_on=None):
    class_types = class_types or ['Flow Yoga'] * len(dates)
    items = [
        BookingItem(
            course_id='c1', instance_id=f's{index}', class_name=class_type,
            price=amount, class_type=class_type, date=day
        )
        for index, (day, class_type) in enumerate(zip(dates, class_types))
    ]
    return Booking(
        id=booking_id,
        user_id='user-1',
        user_email='user1@example.com',
        items=items,
        summary=BookingSummary.from_items(items),
        status=status,
        booking_date=booked_on,
    )


class BookingHelperTests(TestCase):
    """Test the pure booking helpers."""

    def setUp(self):
        self.today = timezone.localdate()
        self.tomorrow = self.today + timedelta(days=1)
        self.yesterday = self.today - timedelta(days=1)

    def test_is_cancellable(self):
        self.assertTrue(is_cancellable(make_booking('b1', dates=[self.tomorrow]), self.today))
        self.assertTrue(is_cancellable(make_booking('b1', dates=[self.yesterday, self.tomorrow]), self.today))
        self.assertFalse(is_cancellable(make_booking('b1', dates=[self.today]), self.today))
        self.assertFalse(is_cancellable(
            make_booking('b1', status='cancelled', dates=[self.tomorrow]), self.today
        ))

    def test_upcoming_classes(self):
        later = self.today + timedelta(days=5)
        bookings = [
            make_booking('b1', dates=[later, self.today]),
            make_booking('b2', dates=[self.tomorrow]),
            make_booking('b3', status='cancelled', dates=[self.tomorrow]),
        ]

        upcoming = get_upcoming_classes(bookings, self.today)

        self.assertEqual(
            [(item.booking_id, item.item.date) for item in upcoming],
            [('b2', self.tomorrow), ('b1', later)]
        )

    def test_group_by_status(self):
        groups = group_bookings_by_status([
            make_booking('b1'),
            make_booking('b2', status='cancelled'),
            make_booking('b3'),
        ])

        self.assertEqual([booking.id for booking in groups['confirmed']], ['b1', 'b3'])
        self.assertEqual([booking.id for booking in groups['cancelled']], ['b2'])
        self.assertEqual(groups['pending'], [])

    def test_stats(self):
        october = datetime(2025, 10, 3, 9, 0, tzinfo=dt_timezone.utc)
        november = datetime(2025, 11, 12, 9, 0, tzinfo=dt_timezone.utc)
        bookings = [
            make_booking('b1', dates=[self.today, self.yesterday],
                         class_types=['Aerial Yoga', 'Flow Yoga'], amount=20.0, booked_on=october),
            make_booking('b2', status='cancelled', dates=[self.tomorrow],
                         class_types=['Flow Yoga'], amount=15.0, booked_on=november),
            make_booking('b3', dates=[None], class_types=[''], amount=5.0, booked_on=november),
        ]

        stats = compute_booking_stats(bookings, self.today)

        self.assertEqual(stats.total_bookings, 3)
        self.assertEqual(stats.total_spent, 60.0)
        self.assertEqual(stats.confirmed_count, 2)
        self.assertEqual(stats.cancelled_count, 1)
        self.assertEqual(stats.upcoming_classes, 2)
        self.assertEqual(stats.past_classes, 1)
        self.assertEqual(stats.class_type_stats, {'Aerial Yoga': 1, 'Flow Yoga': 2, 'Unknown': 1})
        self.assertEqual(stats.favorite_class_type, 'Flow Yoga')
        self.assertEqual(stats.monthly_spending, {'2025-10': 40.0, '2025-11': 20.0})
        self.assertEqual(stats.average_per_booking, 20.0)

    def test_favorite_tie_keeps_first_seen(self):
        stats = compute_booking_stats([
            make_booking('b1', dates=[self.tomorrow], class_types=['Aerial Yoga']),
            make_booking('b2', dates=[self.tomorrow], class_types=['Flow Yoga']),
        ], self.today)

        self.assertEqual(stats.favorite_class_type, 'Aerial Yoga')

    def test_stats_without_bookings(self):
        stats = compute_booking_stats([], self.today)

        self.assertEqual(stats.total_bookings, 0)
        self.assertEqual(stats.average_per_booking, 0)
        self.assertIsNone(stats.favorite_class_type)
