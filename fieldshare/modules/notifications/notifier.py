"""
Notification port for access-request events, with SMS (Twilio REST via
httpx), Celery-queued and log-only implementations.

No implementation raises to its caller: a failed notification is logged
and reported as False, and the state change that triggered it stands.
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional

import httpx

from fieldshare.config import settings
from fieldshare.database import get_db_session
from fieldshare.models import User

logger = logging.getLogger(__name__)

PhoneLookup = Callable[[str], Optional[str]]

_http_client: Optional[httpx.Client] = None


def shared_http_client() -> httpx.Client:
    """One connection pool for every SmsNotifier in the process."""
    global _http_client
    if _http_client is None or _http_client.is_closed:
        _http_client = httpx.Client(timeout=15.0)
    return _http_client


def access_requested_message(requester_name: str, field_name: str) -> str:
    return (
        f"FieldShare: {requester_name} has requested access to your field \"{field_name}\". "
        "Visit your Adjacent Fields page to approve or deny this request."
    )


def access_decided_message(owner_name: str, field_name: str, approved: bool) -> str:
    status = "APPROVED" if approved else "DENIED"
    message = f"FieldShare: {owner_name} has {status} your access request for field \"{field_name}\"."
    if approved:
        message += " You can now view this field in your dashboard."
    return message


class NotificationPort(ABC):
    @abstractmethod
    def notify_access_requested(self, owner_user_id: str, requester_name: str, field_name: str) -> bool: ...

    @abstractmethod
    def notify_access_decided(self, viewer_user_id: str, owner_name: str, field_name: str, approved: bool) -> bool: ...


class LoggingNotifier(NotificationPort):
    """Used when no delivery channel is configured."""

    def notify_access_requested(self, owner_user_id, requester_name, field_name) -> bool:
        logger.info(f"[notify] to {owner_user_id}: {access_requested_message(requester_name, field_name)}")
        return True

    def notify_access_decided(self, viewer_user_id, owner_name, field_name, approved) -> bool:
        logger.info(f"[notify] to {viewer_user_id}: {access_decided_message(owner_name, field_name, approved)}")
        return True


class SmsNotifier(NotificationPort):
    """
    Sends notifications as SMS through the Twilio REST API.

    Disabled (returns False) when Twilio credentials are missing or the
    recipient has no phone number.
    """

    TWILIO_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"

    def __init__(
        self,
        phone_lookup: PhoneLookup,
        account_sid: Optional[str] = None,
        auth_token: Optional[str] = None,
        from_number: Optional[str] = None,
        client: Optional[httpx.Client] = None,
    ):
        self.phone_lookup = phone_lookup
        self.account_sid = account_sid or settings.TWILIO_ACCOUNT_SID
        self.auth_token = auth_token or settings.TWILIO_AUTH_TOKEN
        self.from_number = from_number or settings.TWILIO_PHONE_NUMBER
        self.is_enabled = bool(self.account_sid and self.auth_token and self.from_number)
        self._client = client or shared_http_client()

        if not self.is_enabled:
            logger.warning(
                "SMS notifications disabled - missing Twilio credentials "
                "(TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN, TWILIO_PHONE_NUMBER)"
            )

    def notify_access_requested(self, owner_user_id, requester_name, field_name) -> bool:
        return self._deliver(owner_user_id, access_requested_message(requester_name, field_name))

    def notify_access_decided(self, viewer_user_id, owner_name, field_name, approved) -> bool:
        return self._deliver(viewer_user_id, access_decided_message(owner_name, field_name, approved))

    def _deliver(self, user_id: str, body: str) -> bool:
        if not self.is_enabled:
            logger.info(f"SMS disabled - would notify user {user_id}")
            return False
        try:
            phone = self.phone_lookup(user_id)
            if not phone:
                logger.info(f"User {user_id} has no phone number - cannot send SMS")
                return False
            response = self._client.post(
                self.TWILIO_URL.format(sid=self.account_sid),
                data={"To": phone, "From": self.from_number, "Body": body},
                auth=(self.account_sid, self.auth_token),
            )
            response.raise_for_status()
            logger.info(f"SMS sent to user {user_id}")
            return True
        except httpx.HTTPStatusError as e:
            logger.error(f"Twilio API error: {e.response.status_code}")
            return False
        except Exception as e:
            logger.error(f"Failed to send SMS to user {user_id}: {e}")
            return False


class CeleryNotifier(NotificationPort):
    """Queues delivery on the worker so the caller never waits on SMS."""

    def notify_access_requested(self, owner_user_id, requester_name, field_name) -> bool:
        from fieldshare.tasks import send_access_requested_notification
        return self._enqueue(send_access_requested_notification, owner_user_id, requester_name, field_name)

    def notify_access_decided(self, viewer_user_id, owner_name, field_name, approved) -> bool:
        from fieldshare.tasks import send_access_decided_notification
        return self._enqueue(send_access_decided_notification, viewer_user_id, owner_name, field_name, approved)

    def _enqueue(self, task, *args) -> bool:
        try:
            task.delay(*args)
            return True
        except Exception as e:
            logger.error(f"Could not queue notification {task.name}: {e}")
            return False


def lookup_phone_number(user_id: str) -> Optional[str]:
    """Reads in its own session; delivery may run after the request session closed."""
    with get_db_session() as db:
        user = db.get(User, user_id)
        return user.phone_number if user else None


def get_notifier(phone_lookup: Optional[PhoneLookup] = None) -> NotificationPort:
    """Pick the implementation named by settings.NOTIFICATION_BACKEND."""
    backend = settings.NOTIFICATION_BACKEND
    if backend == "celery":
        return CeleryNotifier()
    if backend == "sms":
        return SmsNotifier(phone_lookup or lookup_phone_number)
    return LoggingNotifier()


def send_quietly(send: Callable[..., bool], *args) -> None:
    """Run a notification; a failure is logged and never reaches the caller."""
    try:
        send(*args)
    except Exception as e:
        logger.error(f"Notification {getattr(send, '__name__', send)} failed: {e}")
