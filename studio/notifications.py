"""
Booking confirmation delivery.

The facade hands a confirmed booking to a notifier after the submit
transaction has committed. Delivery is best-effort: a notifier may raise,
the facade logs the failure and the booking stands.
"""

import logging
from typing import Any, Dict

from django.conf import settings
from django.core.mail import send_mail

from .conf import studio_setting
from .documents import Booking, format_date


logger = logging.getLogger(__name__)


def build_confirmation_payload(booking: Booking) -> Dict[str, Any]:
    """Build the confirmation message payload for a booking."""
    return {
        'bookingId': booking.id,
        'userEmail': booking.user_email,
        'totalAmount': booking.summary.total_amount,
        'items': [
            {
                'className': item.class_name,
                'date': format_date(item.date),
                'time': item.time,
                'teacher': item.teacher,
            }
            for item in booking.items
        ],
    }


class BookingNotifier:
    """Base class for confirmation delivery."""

    def send_confirmation(self, booking: Booking) -> None:
        raise NotImplementedError


class LoggingBookingNotifier(BookingNotifier):
    """Writes the confirmation payload to the log instead of delivering it."""

    def send_confirmation(self, booking: Booking) -> None:
        logger.info("Booking confirmation: %s", build_confirmation_payload(booking))


class EmailBookingNotifier(BookingNotifier):
    """Emails the confirmation through Django's mail backend."""

    subject = 'Your yoga class booking is confirmed'

    def send_confirmation(self, booking: Booking) -> None:
        payload = build_confirmation_payload(booking)
        from_email = studio_setting('CONFIRMATION_FROM_EMAIL') or settings.DEFAULT_FROM_EMAIL

        send_mail(
            subject=self.subject,
            message=self.render_message(payload),
            from_email=from_email,
            recipient_list=[payload['userEmail']],
            fail_silently=False,
        )
        logger.info("Sent confirmation for booking %s to %s", booking.id, booking.user_email)

    def render_message(self, payload: Dict[str, Any]) -> str:
        lines = [f"Booking reference: {payload['bookingId']}", '']
        for item in payload['items']:
            lines.append(
                f"- {item['className']} on {item['date'] or 'TBA'} at {item['time'] or 'TBA'}"
                f" with {item['teacher'] or 'TBA'}"
            )
        lines.extend(['', f"Total: {payload['totalAmount']:.2f}"])
        return '\n'.join(lines)
