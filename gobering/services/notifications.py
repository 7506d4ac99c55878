"""Client notifications for waitlist events.

Delivery is simulated: providers log the message and return a generated
id. Sending is best-effort everywhere; a failing provider is logged and
never interrupts the state transition that triggered it.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any
from uuid import uuid4

from gobering.core.config import settings
from gobering.models.professional import Professional
from gobering.models.waitlist import WaitlistEntry
from gobering.utils.time import ensure_utc, format_hhmm, get_zone

logger = logging.getLogger(__name__)


class NotificationProviderError(Exception):
    """Base exception for notification provider errors."""

    pass


class NotificationProvider(ABC):
    """Abstract base class for notification providers."""

    channel: str = "unknown"

    @abstractmethod
    async def send(
        self,
        recipient: str,
        subject: str | None,
        body: str,
        **kwargs: Any,
    ) -> str:
        """Send a message and return the provider message id.

        Raises NotificationProviderError on failure.
        """
        pass


class EmailProvider(NotificationProvider):
    """Email provider abstraction (SMTP, SES, Resend...)."""

    channel = "email"

    def __init__(self, from_email: str | None = None, from_name: str = "Gobering"):
        self.from_email = from_email or settings.notification_email_from
        self.from_name = from_name

    async def send(
        self,
        recipient: str,
        subject: str | None,
        body: str,
        **kwargs: Any,
    ) -> str:
        """Send email message."""
        # Delivery is simulated until a real gateway is wired in
        logger.info(f"Sending email to {recipient}: {subject}")
        return f"email_{uuid4().hex[:16]}"


class SMSProvider(NotificationProvider):
    """SMS provider abstraction (Twilio or similar)."""

    channel = "sms"

    def __init__(self, from_number: str | None = None):
        self.from_number = from_number or settings.notification_sms_from

    async def send(
        self,
        recipient: str,
        subject: str | None,
        body: str,
        **kwargs: Any,
    ) -> str:
        """Send SMS message."""
        logger.info(f"Sending SMS to {recipient}: {body[:50]}...")
        return f"sms_{uuid4().hex[:16]}"


def priority_link(token: str) -> str:
    """Public link a notified client follows to claim their slot."""
    return f"{settings.public_base_url.rstrip('/')}/appointments/priority/{token}"


def _format_expiry(expires_at: datetime | None, zone_name: str | None) -> str:
    if expires_at is None:
        return "within 24 hours"
    local = ensure_utc(expires_at).astimezone(get_zone(zone_name))
    return local.strftime("%B %d at %H:%M")


class WaitlistNotifier:
    """Renders and sends the waitlist messages.

    Every public method returns True when at least one channel accepted
    the message, False otherwise. Exceptions never escape.
    """

    def __init__(
        self,
        email_provider: NotificationProvider | None = None,
        sms_provider: NotificationProvider | None = None,
    ):
        self.email_provider = email_provider or EmailProvider()
        self.sms_provider = sms_provider or SMSProvider()

    async def _deliver(
        self,
        entry: WaitlistEntry,
        subject: str,
        body: str,
        sms_body: str | None = None,
    ) -> bool:
        targets: list[tuple[NotificationProvider, str, str]] = []
        if entry.email:
            targets.append((self.email_provider, entry.email, body))
        if entry.phone:
            targets.append((self.sms_provider, entry.phone, sms_body or body))

        delivered = False
        for provider, recipient, text in targets:
            try:
                message_id = await provider.send(recipient, subject, text, entry_id=entry.id)
            except Exception:
                logger.exception(
                    f"Waitlist notification failed on {provider.channel}",
                    extra={"waitlist_entry_id": entry.id},
                )
                continue

            logger.debug(f"Notification {message_id} sent for waitlist entry {entry.id}")
            delivered = True

        return delivered

    async def send_confirmation(self, entry: WaitlistEntry, professional: Professional) -> bool:
        subject = f"Waitlist registration - {professional.full_name}"
        body = (
            f"Hello {entry.first_name},\n\n"
            f"You are on the waitlist of {professional.full_name} for "
            f"{entry.preferred_date.isoformat()}. We will contact you as soon as "
            "a matching slot becomes available.\n"
        )
        sms_body = (
            f"Gobering: you are on the waitlist of {professional.full_name} "
            f"for {entry.preferred_date.isoformat()}."
        )
        return await self._deliver(entry, subject, body, sms_body)

    async def send_slot_available(self, entry: WaitlistEntry, professional: Professional) -> bool:
        link = priority_link(entry.token)
        when = entry.available_date.isoformat() if entry.available_date else entry.preferred_date.isoformat()
        hours = ""
        if entry.available_start_time and entry.available_end_time:
            hours = f" {format_hhmm(entry.available_start_time)} - {format_hhmm(entry.available_end_time)}"
        expiry = _format_expiry(entry.expires_at, professional.timezone)

        subject = f"A slot is available - {professional.full_name}"
        body = (
            f"Hello {entry.first_name},\n\n"
            f"A slot with {professional.full_name} opened on {when}{hours}.\n"
            f"It is reserved for you until {expiry}. Book it here:\n{link}\n"
        )
        sms_body = f"Gobering: slot available on {when}{hours}. Book before {expiry}: {link}"
        return await self._deliver(entry, subject, body, sms_body)

    async def send_expired(self, entry: WaitlistEntry, professional: Professional) -> bool:
        subject = f"Priority window expired - {professional.full_name}"
        body = (
            f"Hello {entry.first_name},\n\n"
            f"The slot offered by {professional.full_name} was not claimed in time "
            "and has been offered to the next person on the waitlist.\n"
        )
        return await self._deliver(entry, subject, body)

    async def send_cancelled(self, entry: WaitlistEntry, professional: Professional) -> bool:
        subject = f"Waitlist request cancelled - {professional.full_name}"
        body = (
            f"Hello {entry.first_name},\n\n"
            f"Your waitlist request with {professional.full_name} for "
            f"{entry.preferred_date.isoformat()} has been cancelled.\n"
        )
        return await self._deliver(entry, subject, body)

    async def notify_professional(self, entry: WaitlistEntry, professional: Professional) -> bool:
        """Tell the professional a new client joined their waitlist."""
        if not professional.email:
            return False

        subject = f"New waitlist request - {entry.first_name} {entry.last_name}"
        body = (
            f"{entry.first_name} {entry.last_name} joined your waitlist for "
            f"{entry.preferred_date.isoformat()}.\n"
        )
        try:
            await self.email_provider.send(professional.email, subject, body, entry_id=entry.id)
        except Exception:
            logger.exception(
                "Professional waitlist notification failed",
                extra={"waitlist_entry_id": entry.id, "professional_id": professional.id},
            )
            return False

        return True
