"""
Serializers for the studio booking system.

Document serializers validate raw store documents on their way into typed
records. Request serializers validate API input.
"""

from datetime import datetime, timezone as dt_timezone

from django.utils import timezone
from django.utils.dateparse import parse_datetime
from rest_framework import serializers

from . import errors
from .types import (
    BOOKING_STATUSES,
    CART_PENDING,
    CART_STATUSES,
    CLASS_TYPES,
    COURSE_SORT_ORDERS,
    DAYS_OF_WEEK,
    MAX_DURATION_MINUTES,
    SORT_BY_DAY,
    TIME_PATTERN,
)


class TimestampField(serializers.Field):
    """
    Accepts ISO-8601 strings, datetimes, or epoch milliseconds.

    The admin application stamps ``lastUpdated`` with epoch milliseconds,
    this core writes ISO-8601 strings.
    """

    default_error_messages = {
        'invalid': 'Timestamp must be an ISO-8601 string or epoch milliseconds.',
    }

    def to_internal_value(self, data):
        if isinstance(data, datetime):
            parsed = data
        elif isinstance(data, (int, float)) and not isinstance(data, bool):
            return datetime.fromtimestamp(data / 1000, tz=dt_timezone.utc)
        elif isinstance(data, str):
            parsed = parse_datetime(data)
            if parsed is None:
                self.fail('invalid')
        else:
            self.fail('invalid')

        if timezone.is_naive(parsed):
            parsed = timezone.make_aware(parsed, dt_timezone.utc)
        return parsed

    def to_representation(self, value):
        return value.isoformat()


class OptionalDateField(serializers.DateField):
    """Date field that treats an empty string as no date."""

    def to_internal_value(self, value):
        if value in ('', None):
            return None
        return super().to_internal_value(value)


class CourseDocumentSerializer(serializers.Serializer):
    """Validates a document of the courses collection."""

    dayOfWeek = serializers.ChoiceField(choices=DAYS_OF_WEEK)
    time = serializers.RegexField(
        TIME_PATTERN,
        error_messages={'invalid': 'Time must be in HH:MM format.'}
    )
    capacity = serializers.IntegerField(min_value=1)
    duration = serializers.IntegerField(min_value=1, max_value=MAX_DURATION_MINUTES)
    price = serializers.FloatField(min_value=0)
    type = serializers.ChoiceField(choices=CLASS_TYPES)
    description = serializers.CharField(required=False, allow_blank=True, default='')
    lastUpdated = TimestampField(required=False, allow_null=True, default=None)


class RosterEntrySerializer(serializers.Serializer):
    """Validates one entry of a schedule's booking roster."""

    bookingId = serializers.CharField()
    userId = serializers.CharField()
    userEmail = serializers.CharField(required=False, allow_blank=True, default='')
    bookedAt = TimestampField(required=False, allow_null=True, default=None)
    quantity = serializers.IntegerField(min_value=1, required=False, default=1)


class ScheduleDocumentSerializer(serializers.Serializer):
    """Validates a document of the schedules collection."""

    courseId = serializers.CharField()
    date = serializers.DateField(input_formats=['%Y-%m-%d'])
    teacher = serializers.CharField()
    comments = serializers.CharField(required=False, allow_blank=True, allow_null=True, default='')
    bookings = RosterEntrySerializer(many=True, required=False)
    lastUpdated = TimestampField(required=False, allow_null=True, default=None)


class BookingItemSerializer(serializers.Serializer):
    """
    Validates a booking line snapshot.

    The same required-field rules apply to cart rows, which extend this
    serializer with ownership and status fields.
    """

    courseId = serializers.CharField()
    instanceId = serializers.CharField()
    className = serializers.CharField()
    price = serializers.FloatField(min_value=0)
    quantity = serializers.IntegerField(min_value=1, required=False, default=1)
    classType = serializers.CharField(required=False, allow_blank=True, allow_null=True, default='')
    teacher = serializers.CharField(required=False, allow_blank=True, allow_null=True, default='')
    date = OptionalDateField(required=False, allow_null=True, default=None, input_formats=['%Y-%m-%d'])
    time = serializers.CharField(required=False, allow_blank=True, allow_null=True, default='')
    duration = serializers.IntegerField(required=False, allow_null=True, min_value=0, default=0)
    dayOfWeek = serializers.CharField(required=False, allow_blank=True, allow_null=True, default='')
    description = serializers.CharField(required=False, allow_blank=True, allow_null=True, default='')
    comments = serializers.CharField(required=False, allow_blank=True, allow_null=True, default='')


class CartItemDocumentSerializer(BookingItemSerializer):
    """Validates a document of the cart collection."""

    userId = serializers.CharField()
    capacity = serializers.IntegerField(required=False, allow_null=True, min_value=0, default=0)
    addedAt = TimestampField(required=False, allow_null=True, default=None)
    status = serializers.ChoiceField(choices=CART_STATUSES, required=False, default=CART_PENDING)
    bookingId = serializers.CharField(required=False, allow_null=True, default=None)
    bookedAt = TimestampField(required=False, allow_null=True, default=None)


class BookingSummarySerializer(serializers.Serializer):
    totalAmount = serializers.FloatField(min_value=0)
    totalItems = serializers.IntegerField(min_value=0)
    totalQuantity = serializers.IntegerField(min_value=0)


class BookingDocumentSerializer(serializers.Serializer):
    """Validates a document of the bookings collection."""

    userId = serializers.CharField()
    userEmail = serializers.CharField()
    items = BookingItemSerializer(many=True, allow_empty=False)
    summary = BookingSummarySerializer()
    status = serializers.ChoiceField(choices=BOOKING_STATUSES)
    bookingDate = TimestampField(required=False, allow_null=True, default=None)
    cancelledAt = TimestampField(required=False, allow_null=True, default=None)
    paymentDetails = serializers.JSONField(required=False, allow_null=True, default=None)
    createdAt = TimestampField(required=False, allow_null=True, default=None)
    updatedAt = TimestampField(required=False, allow_null=True, default=None)


class CourseFilterQuerySerializer(serializers.Serializer):
    """Serializer for course listing query parameters."""

    dayOfWeek = serializers.ChoiceField(choices=DAYS_OF_WEEK, required=False)
    time = serializers.RegexField(TIME_PATTERN, required=False)
    type = serializers.ChoiceField(choices=CLASS_TYPES, required=False)
    maxPrice = serializers.FloatField(min_value=0, required=False)
    minCapacity = serializers.IntegerField(min_value=1, required=False)
    maxDuration = serializers.IntegerField(min_value=1, required=False)
    search = serializers.CharField(required=False, allow_blank=True)
    sortBy = serializers.ChoiceField(choices=COURSE_SORT_ORDERS, required=False, default=SORT_BY_DAY)


class TeacherSearchQuerySerializer(serializers.Serializer):
    teacher = serializers.CharField()


class DateWindowQuerySerializer(serializers.Serializer):
    """Serializer for an optional date window."""

    start = serializers.DateField(required=False)
    end = serializers.DateField(required=False)

    def validate(self, data):
        """Ensure start is not after end."""
        start = data.get('start')
        end = data.get('end')
        if start and end and start > end:
            raise serializers.ValidationError("Start date must not be after end date.")
        return data


class CartAddSerializer(serializers.Serializer):
    """Serializer for adding a schedule to the cart."""

    scheduleId = serializers.CharField()
    quantity = serializers.IntegerField(min_value=1, required=False, default=1)


class CartQuantitySerializer(serializers.Serializer):
    quantity = serializers.IntegerField()


class BookingSubmitSerializer(serializers.Serializer):
    """Serializer for checking out the cart."""

    cartItemIds = serializers.ListField(
        child=serializers.CharField(),
        required=False,
        allow_empty=False
    )
    paymentDetails = serializers.JSONField(required=False, allow_null=True, default=None)


class BookingHistoryQuerySerializer(serializers.Serializer):
    """Serializer for booking history query parameters."""

    status = serializers.ChoiceField(choices=BOOKING_STATUSES, required=False)
    fromDate = serializers.DateTimeField(required=False)
    toDate = serializers.DateTimeField(required=False)

    def validate(self, data):
        """Ensure fromDate is not after toDate."""
        if data.get('fromDate') and data.get('toDate') and data['fromDate'] > data['toDate']:
            raise serializers.ValidationError("fromDate must not be after toDate.")
        return data


def validate_document(serializer_class, data, label):
    """
    Validate raw data with a serializer and return the validated values.

    Raises:
        ValidationError: If the data does not satisfy the serializer
    """
    serializer = serializer_class(data=data)
    if not serializer.is_valid():
        raise errors.ValidationError(
            f"Invalid {label}: {format_errors(serializer.errors)}",
            errors=serializer.errors
        )
    return serializer.validated_data


def format_errors(error_detail, prefix=''):
    """Flatten nested serializer errors into one readable line."""
    if isinstance(error_detail, dict):
        parts = [
            format_errors(detail, f"{prefix}{field}.")
            for field, detail in error_detail.items()
        ]
    elif isinstance(error_detail, list):
        if all(isinstance(detail, str) for detail in error_detail):
            label = prefix.rstrip('.') or 'error'
            return f"{label}: {' '.join(str(detail) for detail in error_detail)}"
        parts = [
            format_errors(detail, f"{prefix}{index}.")
            for index, detail in enumerate(error_detail)
            if detail
        ]
    else:
        label = prefix.rstrip('.') or 'error'
        return f"{label}: {error_detail}"
    return '; '.join(part for part in parts if part)
