"""Waitlist lifecycle: registration, freed-slot dispatch, expiry and claims.

Entries move pending -> notified -> fulfilled | expired, and pending or
notified entries can be cancelled. A freed interval is offered to one entry
at a time, oldest first. Priority windows are checked lazily whenever
entries are read, dispatched or claimed; an expired offer cascades to the
next eligible entry.
"""

import logging
from datetime import date, datetime, time, timedelta
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gobering.availability.slots import overlaps, parse_minutes
from gobering.core.cache import SlotCache
from gobering.core.config import settings
from gobering.core.security import generate_link_token
from gobering.models.professional import Professional
from gobering.models.scheduling import Appointment
from gobering.models.waitlist import WaitlistEntry, WaitlistStatus
from gobering.services.appointments import AppointmentService
from gobering.services.availability import AvailabilityService
from gobering.services.exceptions import (
    BookingValidationError,
    InvalidTransitionError,
    NotFoundError,
    TokenExpiredError,
    WaitlistDisabledError,
)
from gobering.services.notifications import WaitlistNotifier
from gobering.utils.time import ensure_utc, utc_now

logger = logging.getLogger(__name__)


def transition(entry: WaitlistEntry, target: WaitlistStatus) -> None:
    """Move an entry to ``target`` or raise if the lifecycle forbids it."""
    if not entry.status.can_transition_to(target):
        raise InvalidTransitionError(
            f"Cannot move waitlist entry from {entry.status.value} to {target.value}",
            current_status=entry.status.value,
            target_status=target.value,
        )
    entry.status = target


def window_has_lapsed(entry: WaitlistEntry, now: datetime) -> bool:
    """True once ``now`` reaches the entry's ``expires_at``."""
    return entry.expires_at is not None and ensure_utc(entry.expires_at) <= now


def is_eligible(
    entry: WaitlistEntry,
    slot_date: date,
    start_time: time,
    end_time: time,
    professional_service_id: str | None,
    match_window_days: int = 0,
) -> bool:
    """Whether a pending entry wants the freed interval.

    The preferred date must be the freed date, or up to ``match_window_days``
    before it. A preferred time range, when given, must overlap the interval.
    An entry that asked for a service only matches a slot of that service;
    an entry without one matches any slot.
    """
    earliest = slot_date - timedelta(days=max(match_window_days, 0))
    if not earliest <= entry.preferred_date <= slot_date:
        return False

    if entry.preferred_time_start is not None or entry.preferred_time_end is not None:
        pref_start = (
            parse_minutes(entry.preferred_time_start)
            if entry.preferred_time_start is not None
            else 0
        )
        pref_end = (
            parse_minutes(entry.preferred_time_end)
            if entry.preferred_time_end is not None
            else 24 * 60
        )
        if not overlaps(pref_start, pref_end, parse_minutes(start_time), parse_minutes(end_time)):
            return False

    if entry.professional_service_id and entry.professional_service_id != professional_service_id:
        return False

    return True


class WaitlistService:
    """Service for the waitlist entry lifecycle."""

    def __init__(
        self,
        session: AsyncSession,
        cache: SlotCache | None = None,
        notifier: WaitlistNotifier | None = None,
        match_window_days: int | None = None,
    ):
        self.session = session
        self.cache = cache
        self.notifier = notifier or WaitlistNotifier()
        self.match_window_days = (
            settings.waitlist_match_window_days
            if match_window_days is None
            else match_window_days
        )
        self.availability = AvailabilityService(session, cache)

    async def _get_professional(self, professional_id: str) -> Professional:
        professional = await self.availability.get_professional(professional_id)
        if not professional:
            raise NotFoundError("Professional not found", professional_id=professional_id)
        return professional

    # -------------------------------------------------------------------------
    # Registration and lookups
    # -------------------------------------------------------------------------

    async def create_entry(
        self,
        professional_id: str,
        first_name: str,
        last_name: str,
        phone: str,
        preferred_date: date,
        email: str | None = None,
        preferred_time_start: time | None = None,
        preferred_time_end: time | None = None,
        professional_service_id: str | None = None,
        notes: str | None = None,
    ) -> WaitlistEntry:
        """Register a client for a full time range.

        Raises:
            NotFoundError: unknown professional or service
            WaitlistDisabledError: the professional does not take waitlist requests
            BookingValidationError: missing contact details or inverted time range
        """
        professional = await self._get_professional(professional_id)

        if not professional.waitlist_enabled:
            raise WaitlistDisabledError(
                "This professional does not accept waitlist requests",
                professional_id=professional_id,
            )

        if not (first_name or "").strip() or not (last_name or "").strip():
            raise BookingValidationError("first_name and last_name are required")
        if not (phone or "").strip():
            raise BookingValidationError("phone is required")

        if (
            preferred_time_start is not None
            and preferred_time_end is not None
            and preferred_time_start >= preferred_time_end
        ):
            raise BookingValidationError(
                "preferred_time_start must be before preferred_time_end",
                preferred_time_start=preferred_time_start.isoformat(),
                preferred_time_end=preferred_time_end.isoformat(),
            )

        if professional_service_id:
            await self.availability.get_service(professional_id, professional_service_id)

        entry = WaitlistEntry(
            professional_id=professional_id,
            professional_service_id=professional_service_id,
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            email=email,
            phone=phone.strip(),
            notes=notes,
            preferred_date=preferred_date,
            preferred_time_start=preferred_time_start,
            preferred_time_end=preferred_time_end,
            status=WaitlistStatus.PENDING,
            token=generate_link_token(),
        )

        self.session.add(entry)
        await self.session.commit()
        await self.session.refresh(entry)

        logger.info(
            f"Waitlist entry created for {preferred_date}",
            extra={"professional_id": professional_id, "waitlist_entry_id": entry.id},
        )

        await self.notifier.send_confirmation(entry, professional)
        await self.notifier.notify_professional(entry, professional)
        return entry

    async def get_entry(self, entry_id: str, professional_id: str | None = None) -> WaitlistEntry:
        query = select(WaitlistEntry).where(WaitlistEntry.id == entry_id)
        if professional_id:
            query = query.where(WaitlistEntry.professional_id == professional_id)

        result = await self.session.execute(query)
        entry = result.scalar_one_or_none()
        if not entry:
            raise NotFoundError("Waitlist entry not found", waitlist_entry_id=entry_id)
        return entry

    async def _find_by_token(self, token: str) -> WaitlistEntry:
        result = await self.session.execute(
            select(WaitlistEntry).where(WaitlistEntry.token == token)
        )
        entry = result.scalar_one_or_none()
        if not entry:
            raise NotFoundError("Waitlist entry not found")
        return entry

    async def get_entry_by_token(self, token: str, now: datetime | None = None) -> WaitlistEntry:
        """Read an entry through its link, expiring its window if it lapsed."""
        now = ensure_utc(now) if now else utc_now()
        entry = await self._find_by_token(token)

        if entry.status == WaitlistStatus.NOTIFIED and window_has_lapsed(entry, now):
            await self.expire_stale_entries(now, professional_id=entry.professional_id)

        return entry

    async def list_entries(
        self,
        professional_id: str,
        status: WaitlistStatus | None = None,
        now: datetime | None = None,
    ) -> Sequence[WaitlistEntry]:
        """Entries for a professional in queue order."""
        await self.expire_stale_entries(now, professional_id=professional_id)

        query = select(WaitlistEntry).where(WaitlistEntry.professional_id == professional_id)
        if status:
            query = query.where(WaitlistEntry.status == status)

        query = query.order_by(WaitlistEntry.created_at, WaitlistEntry.id)

        result = await self.session.execute(query)
        return result.scalars().all()

    # -------------------------------------------------------------------------
    # Dispatch and expiry
    # -------------------------------------------------------------------------

    async def expire_stale_entries(
        self,
        now: datetime | None = None,
        professional_id: str | None = None,
    ) -> list[WaitlistEntry]:
        """Expire lapsed priority windows and pass each offer to the next entry.

        Returns:
            The entries that were expired
        """
        now = ensure_utc(now) if now else utc_now()

        query = select(WaitlistEntry).where(WaitlistEntry.status == WaitlistStatus.NOTIFIED)
        if professional_id:
            query = query.where(WaitlistEntry.professional_id == professional_id)

        result = await self.session.execute(query)
        lapsed = [entry for entry in result.scalars().all() if window_has_lapsed(entry, now)]
        if not lapsed:
            return []

        for entry in lapsed:
            transition(entry, WaitlistStatus.EXPIRED)
        await self.session.commit()
        for owner_id in {entry.professional_id for entry in lapsed}:
            self.availability.invalidate(owner_id)

        for entry in lapsed:
            logger.info(
                "Waitlist priority window expired",
                extra={"professional_id": entry.professional_id, "waitlist_entry_id": entry.id},
            )
            professional = await self.session.get(Professional, entry.professional_id)
            if professional:
                await self.notifier.send_expired(entry, professional)

            if entry.has_offer:
                await self._offer_interval(
                    entry.professional_id,
                    entry.available_date,
                    entry.available_start_time,
                    entry.available_end_time,
                    entry.available_service_id,
                    now,
                )

        return lapsed

    async def dispatch_freed_slot(
        self,
        professional_id: str,
        slot_date: date,
        start_time: time,
        end_time: time,
        professional_service_id: str | None = None,
        now: datetime | None = None,
    ) -> WaitlistEntry | None:
        """Offer a freed interval to the oldest eligible pending entry.

        Returns:
            The notified entry, or None when nobody was notified
        """
        now = ensure_utc(now) if now else utc_now()

        await self.expire_stale_entries(now, professional_id=professional_id)

        return await self._offer_interval(
            professional_id,
            slot_date,
            start_time,
            end_time,
            professional_service_id,
            now,
        )

    async def _has_active_hold(
        self,
        professional_id: str,
        slot_date: date,
        start_time: time,
        end_time: time,
        now: datetime,
    ) -> bool:
        holds = await self.availability.get_active_holds(
            professional_id, slot_date, slot_date, now
        )
        start, end = parse_minutes(start_time), parse_minutes(end_time)
        return any(
            overlaps(
                start,
                end,
                parse_minutes(entry.available_start_time),
                parse_minutes(entry.available_end_time),
            )
            for entry in holds
        )

    async def _offer_interval(
        self,
        professional_id: str,
        slot_date: date,
        start_time: time,
        end_time: time,
        professional_service_id: str | None,
        now: datetime,
    ) -> WaitlistEntry | None:
        professional = await self.availability.get_professional(professional_id)
        if not professional or not professional.waitlist_enabled:
            return None

        if await self._has_active_hold(professional_id, slot_date, start_time, end_time, now):
            logger.debug(
                f"Interval {slot_date} {start_time} already held by a notified entry",
                extra={"professional_id": professional_id},
            )
            return None

        if not await self.availability.is_interval_available(
            professional_id, slot_date, start_time, end_time, now=now
        ):
            return None

        result = await self.session.execute(
            select(WaitlistEntry)
            .where(
                WaitlistEntry.professional_id == professional_id,
                WaitlistEntry.status == WaitlistStatus.PENDING,
            )
            .order_by(WaitlistEntry.created_at, WaitlistEntry.id)
        )
        entry = next(
            (
                candidate
                for candidate in result.scalars().all()
                if is_eligible(
                    candidate,
                    slot_date,
                    start_time,
                    end_time,
                    professional_service_id,
                    self.match_window_days,
                )
            ),
            None,
        )
        if entry is None:
            return None

        transition(entry, WaitlistStatus.NOTIFIED)
        entry.notified_at = now
        entry.expires_at = now + timedelta(hours=professional.waitlist_priority_hours)
        entry.available_date = slot_date
        entry.available_start_time = start_time
        entry.available_end_time = end_time
        entry.available_service_id = professional_service_id
        await self.session.commit()
        self.availability.invalidate(professional_id)

        logger.info(
            f"Waitlist entry notified for {slot_date} {start_time:%H:%M}",
            extra={"professional_id": professional_id, "waitlist_entry_id": entry.id},
        )

        await self.notifier.send_slot_available(entry, professional)
        return entry

    # -------------------------------------------------------------------------
    # Client and professional actions
    # -------------------------------------------------------------------------

    async def claim(self, token: str, now: datetime | None = None) -> Appointment:
        """Book the offered interval through the priority link.

        Raises:
            NotFoundError: unknown token
            TokenExpiredError: the priority window has lapsed
            InvalidTransitionError: entry is not waiting on an offer
            SlotConflictError: the interval was taken in the meantime
        """
        now = ensure_utc(now) if now else utc_now()
        entry = await self._find_by_token(token)

        await self.expire_stale_entries(now, professional_id=entry.professional_id)

        if entry.status == WaitlistStatus.EXPIRED:
            raise TokenExpiredError(
                "The priority window for this slot has expired",
                expires_at=ensure_utc(entry.expires_at).isoformat() if entry.expires_at else None,
            )

        if entry.status != WaitlistStatus.NOTIFIED or not entry.has_offer:
            raise InvalidTransitionError(
                "This waitlist entry has no slot to claim",
                current_status=entry.status.value,
            )

        appointments = AppointmentService(self.session, cache=self.cache, notifier=self.notifier)
        appointment = await appointments.book_appointment(
            entry.professional_id,
            entry.available_date,
            entry.available_start_time,
            first_name=entry.first_name,
            last_name=entry.last_name,
            end_time=entry.available_end_time,
            email=entry.email,
            phone=entry.phone,
            notes=entry.notes,
            professional_service_id=entry.available_service_id or entry.professional_service_id,
            enforce_schedule=True,
            waitlist_entry_id=entry.id,
            now=now,
            commit=False,
        )

        transition(entry, WaitlistStatus.FULFILLED)
        entry.appointment_id = appointment.id
        await self.session.commit()
        await self.session.refresh(appointment)

        logger.info(
            "Waitlist entry fulfilled",
            extra={
                "professional_id": entry.professional_id,
                "waitlist_entry_id": entry.id,
                "appointment_id": appointment.id,
            },
        )
        return appointment

    async def cancel_entry(
        self,
        entry_id: str | None = None,
        token: str | None = None,
        professional_id: str | None = None,
        now: datetime | None = None,
    ) -> WaitlistEntry:
        """Withdraw an entry by id (professional) or token (client).

        A notified entry gives up its offer, which moves on to the next entry.
        """
        now = ensure_utc(now) if now else utc_now()

        if token:
            entry = await self._find_by_token(token)
        elif entry_id:
            entry = await self.get_entry(entry_id, professional_id)
        else:
            raise BookingValidationError("entry_id or token is required")

        await self.expire_stale_entries(now, professional_id=entry.professional_id)

        held_offer = entry.status == WaitlistStatus.NOTIFIED and entry.has_offer
        transition(entry, WaitlistStatus.CANCELLED)
        await self.session.commit()
        if held_offer:
            self.availability.invalidate(entry.professional_id)

        logger.info(
            "Waitlist entry cancelled",
            extra={"professional_id": entry.professional_id, "waitlist_entry_id": entry.id},
        )

        professional = await self.session.get(Professional, entry.professional_id)
        if professional:
            await self.notifier.send_cancelled(entry, professional)

        if held_offer:
            await self._offer_interval(
                entry.professional_id,
                entry.available_date,
                entry.available_start_time,
                entry.available_end_time,
                entry.available_service_id,
                now,
            )

        return entry
