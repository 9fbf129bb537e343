"""
Settings access for the studio app.

Values come from the ``STUDIO`` dict in Django settings, falling back to
the defaults below.
"""

from django.conf import settings
from django.utils.module_loading import import_string


DEFAULTS = {
    'ENFORCE_CAPACITY': False,
    'TRANSACTION_MAX_ATTEMPTS': 5,
    'SEND_CONFIRMATIONS': True,
    'CONFIRMATION_FROM_EMAIL': None,
    'NOTIFIER': 'studio.notifications.EmailBookingNotifier',
}


def studio_setting(name):
    """Return a studio setting, or its default when not configured."""
    if name not in DEFAULTS:
        raise KeyError(f"Unknown studio setting: {name}")
    overrides = getattr(settings, 'STUDIO', {}) or {}
    return overrides.get(name, DEFAULTS[name])


def load_notifier():
    """Instantiate the notifier class named by the NOTIFIER setting."""
    notifier_path = studio_setting('NOTIFIER')
    if not notifier_path:
        return None
    return import_string(notifier_path)()
