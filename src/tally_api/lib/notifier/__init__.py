"""Notifier library: out-of-band delivery of one-time codes.

Public API:
    - BaseNotifier: Abstract delivery interface
    - NotificationError: Transport failure
    - LogNotifier: Development backend that logs codes
    - HttpSmsNotifier: HTTP SMS gateway backend
    - get_notifier: Build the backend selected in settings
"""

from tally_api.core.config import Settings
from tally_api.lib.notifier.base import BaseNotifier, NotificationError
from tally_api.lib.notifier.log_notifier import LogNotifier
from tally_api.lib.notifier.sms import HttpSmsNotifier


def get_notifier(settings: Settings) -> BaseNotifier:
    """Build the notifier configured by ``settings.notifier_backend``.

    Args:
        settings: Application settings.

    Returns:
        A notifier instance.

    Raises:
        ValueError: If the HTTP backend is selected without a gateway URL or API key.
    """
    if settings.notifier_backend == "http":
        if not settings.sms_gateway_url or not settings.sms_gateway_api_key:
            msg = "notifier_backend=http requires sms_gateway_url and sms_gateway_api_key"
            raise ValueError(msg)
        return HttpSmsNotifier(
            gateway_url=settings.sms_gateway_url,
            api_key=settings.sms_gateway_api_key,
            sender_id=settings.sms_gateway_sender_id,
            timeout=settings.sms_gateway_timeout,
        )
    return LogNotifier()


__all__ = [
    "BaseNotifier",
    "HttpSmsNotifier",
    "LogNotifier",
    "NotificationError",
    "get_notifier",
]
