"""
Notification Dispatcher
Applies preferences and quiet hours, then fans a notification out to its channels
"""

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass
from typing import Dict, List, Optional, Any
from datetime import datetime, timedelta
from sqlalchemy.orm import Session
from sqlalchemy import and_, func, or_, update
from sqlalchemy.exc import SQLAlchemyError

import httpx

from config import engine_config, settings
from database import get_db_context
import models
from models import (
    DeliveryStatus,
    DoseStatus,
    NotificationCategory,
    NotificationChannel,
    NotificationPriority,
    NotificationStatus,
)
from services.notification_service import render_email_html
from services.preference_service import preference_service
from tools.channels import ChannelAdapters, ChannelDeliveryError, build_channel_adapters
from tools.time_windows import utcnow


logger = logging.getLogger(__name__)


@dataclass
class DeliveryResult:
    """Outcome of one channel attempt"""
    channel: NotificationChannel
    delivered: bool
    provider_message_id: Optional[str] = None
    error: Optional[str] = None


class NotificationDispatcher:
    """
    Delivers notifications through the configured channel adapters

    Order of checks: category toggle, quiet hours, channel selection.
    Suppressed notifications end as `skipped` with a reason. Channels are
    sent concurrently, each under CHANNEL_TIMEOUT_SECONDS, and a failing
    channel never affects the others.
    """

    def __init__(self, adapters: Optional[ChannelAdapters] = None):
        self._adapters = adapters

    @property
    def adapters(self) -> ChannelAdapters:
        if self._adapters is None:
            self._adapters = build_channel_adapters()
        return self._adapters

    def _finish(
        self,
        session: Session,
        notification: models.Notification,
        status: NotificationStatus,
        reason: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> None:
        notification.status = status.value
        notification.skip_reason = reason
        if status == NotificationStatus.SENT:
            notification.sent_at = now or utcnow()
        session.commit()

    async def dispatch(
        self,
        notification: models.Notification,
        db: Optional[Session] = None,
        now: Optional[datetime] = None
    ) -> List[DeliveryResult]:
        """
        Deliver a single notification

        Args:
            notification: Pending or claimed notification
            db: Database session
            now: Reference time for quiet hours (naive UTC)

        Returns:
            One DeliveryResult per attempted channel; empty when suppressed
        """
        notification_id = notification.id

        async def _dispatch(session: Session) -> List[DeliveryResult]:
            current = now or utcnow()
            record = session.get(models.Notification, notification_id)
            if record is None:
                raise LookupError(f"Notification {notification_id} not found")

            if record.status not in (NotificationStatus.PENDING.value, NotificationStatus.DISPATCHING.value):
                logger.debug(f"Notification {notification_id} is already {record.status}")
                return []

            try:
                category = NotificationCategory(record.category)
                priority = NotificationPriority(record.priority)
                requested = [NotificationChannel(channel) for channel in record.channels or []]
            except ValueError as e:
                logger.error(f"Dropping notification {notification_id}: {e}")
                self._finish(session, record, NotificationStatus.FAILED, "invalid_contract")
                return []

            user = session.get(models.User, record.user_id)
            preference = await preference_service.get_preferences(record.user_id, db=session)

            if not preference_service.is_category_enabled(preference, category):
                logger.info(f"Notification {notification_id} skipped: {category.value} disabled")
                self._finish(session, record, NotificationStatus.SKIPPED, "category_disabled")
                return []

            decision = preference_service.evaluate_quiet_hours(preference, priority, user.timezone, now=current)
            if decision.suppressed:
                logger.info(
                    f"Notification {notification_id} suppressed by quiet hours "
                    f"(local {decision.local_time}, {priority.value})"
                )
                self._finish(session, record, NotificationStatus.SKIPPED, "quiet_hours")
                return []

            caregiver = None
            if record.caregiver_id:
                caregiver = session.get(models.Caregiver, record.caregiver_id)
                if caregiver is None or not caregiver.notifications_enabled:
                    self._finish(session, record, NotificationStatus.SKIPPED, "caregiver_disabled")
                    return []
                channels = [
                    channel for channel in dict.fromkeys(requested)
                    if self._caregiver_reachable(caregiver, channel)
                ]
            else:
                channels = preference_service.enabled_channels(preference, requested)

            if not channels:
                logger.info(f"Notification {notification_id} skipped: no enabled channels")
                self._finish(session, record, NotificationStatus.SKIPPED, "no_channels")
                return []

            outcomes = await asyncio.gather(
                *(self._send(channel, record, priority, user, caregiver) for channel in channels),
                return_exceptions=True
            )

            results = []
            for channel, outcome in zip(channels, outcomes):
                if isinstance(outcome, BaseException):
                    logger.error(f"Unexpected {channel.value} failure for notification {notification_id}: {outcome!r}")
                    outcome = DeliveryResult(channel=channel, delivered=False, error=repr(outcome))
                results.append(outcome)
                self._record_delivery(session, record, outcome, current)

            if any(result.delivered for result in results):
                self._finish(session, record, NotificationStatus.SENT, now=current)
            else:
                self._finish(session, record, NotificationStatus.FAILED, "all_channels_failed")

            logger.info(
                f"Notification {notification_id} {record.status}: "
                + ", ".join(f"{r.channel.value}={'ok' if r.delivered else 'failed'}" for r in results)
            )
            return results

        if db:
            return await _dispatch(db)

        with get_db_context() as session:
            return await _dispatch(session)

    @staticmethod
    def _caregiver_reachable(caregiver: models.Caregiver, channel: NotificationChannel) -> bool:
        if channel == NotificationChannel.EMAIL:
            return bool(caregiver.email)
        if channel == NotificationChannel.SMS:
            return bool(caregiver.phone_number)
        return False

    async def _send(
        self,
        channel: NotificationChannel,
        notification: models.Notification,
        priority: NotificationPriority,
        user: models.User,
        caregiver: Optional[models.Caregiver]
    ) -> DeliveryResult:
        data: Dict[str, Any] = notification.data or {}
        adapter = self.adapters.for_channel(channel)
        try:
            if channel == NotificationChannel.PUSH:
                call = adapter.send(
                    user.id,
                    notification.title,
                    notification.message,
                    priority.value,
                    data={
                        "notification_id": notification.id,
                        "category": notification.category,
                        "dose_instance_id": notification.dose_instance_id,
                    }
                )
            elif channel == NotificationChannel.EMAIL:
                address = caregiver.email if caregiver else user.email
                if not address:
                    raise ChannelDeliveryError(channel, "recipient has no email address")
                html = render_email_html(
                    notification.title,
                    notification.message,
                    priority,
                    recipient_name=caregiver.name if caregiver else user.display_name,
                    patient_name=user.display_name if caregiver else None
                )
                call = adapter.send(address, notification.title, html)
            else:
                phone = caregiver.phone_number if caregiver else user.phone_number
                if not phone:
                    raise ChannelDeliveryError(channel, "recipient has no phone number")
                text = data.get("sms_text") or f"{notification.title}: {notification.message}"
                call = adapter.send(phone, text)

            message_id = await asyncio.wait_for(call, timeout=settings.CHANNEL_TIMEOUT_SECONDS)
            return DeliveryResult(channel=channel, delivered=True, provider_message_id=message_id)

        except asyncio.TimeoutError:
            logger.warning(f"{channel.value} delivery timed out for notification {notification.id}")
            return DeliveryResult(
                channel=channel,
                delivered=False,
                error=f"timed out after {settings.CHANNEL_TIMEOUT_SECONDS}s"
            )
        except (ChannelDeliveryError, httpx.HTTPError) as e:
            logger.warning(f"{channel.value} delivery failed for notification {notification.id}: {e}")
            return DeliveryResult(channel=channel, delivered=False, error=str(e))

    def _record_delivery(
        self,
        session: Session,
        notification: models.Notification,
        result: DeliveryResult,
        now: datetime
    ) -> None:
        previous = session.query(func.count(models.NotificationDelivery.id)).filter(
            and_(
                models.NotificationDelivery.notification_id == notification.id,
                models.NotificationDelivery.channel == result.channel.value
            )
        ).scalar()

        session.add(models.NotificationDelivery(
            notification_id=notification.id,
            channel=result.channel.value,
            status=(DeliveryStatus.DELIVERED if result.delivered else DeliveryStatus.FAILED).value,
            attempt_count=(previous or 0) + 1,
            last_error=result.error,
            provider_message_id=result.provider_message_id,
            delivered_at=now if result.delivered else None,
        ))

    def _claimable(self, current: datetime):
        """Due pending rows, plus `dispatching` rows whose claim went stale"""
        stale_cutoff = current - timedelta(minutes=engine_config.DISPATCH_CLAIM_TIMEOUT_MINUTES)
        return or_(
            and_(
                models.Notification.status == NotificationStatus.PENDING.value,
                models.Notification.scheduled_for <= current
            ),
            and_(
                models.Notification.status == NotificationStatus.DISPATCHING.value,
                models.Notification.updated_at <= stale_cutoff
            )
        )

    def _release(
        self,
        session: Session,
        notification_id: int,
        status: NotificationStatus,
        reason: Optional[str],
        now: datetime
    ) -> None:
        session.execute(
            update(models.Notification)
            .where(
                and_(
                    models.Notification.id == notification_id,
                    models.Notification.status == NotificationStatus.DISPATCHING.value
                )
            )
            .values(status=status.value, skip_reason=reason, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        session.commit()

    async def _process_claimed(
        self,
        session: Session,
        notification_id: int,
        now: datetime
    ) -> str:
        notification = session.get(models.Notification, notification_id, populate_existing=True)

        if (
            notification.category == NotificationCategory.MEDICATION_REMINDER.value
            and notification.dose_instance is not None
            and notification.dose_instance.status != DoseStatus.PENDING.value
        ):
            self._finish(session, notification, NotificationStatus.SKIPPED, "dose_resolved")
            return notification.status

        await self.dispatch(notification, db=session, now=now)
        return notification.status

    async def process_due_notifications(
        self,
        user_id: Optional[int] = None,
        db: Optional[Session] = None,
        now: Optional[datetime] = None,
        limit: Optional[int] = None
    ) -> Dict[str, int]:
        """
        Claim and dispatch notifications whose scheduled_for has passed

        Claiming is a guarded `pending -> dispatching` update, so concurrent
        workers never deliver the same notification twice. A claim older than
        DISPATCH_CLAIM_TIMEOUT_MINUTES is taken over by the next run. A
        reminder whose dose is no longer pending is skipped.

        Storage errors release the claim back to `pending`; any other error
        marks that notification `failed` and the batch carries on.

        Returns:
            Count of processed notifications per final status
        """
        async def _process(session: Session) -> Dict[str, int]:
            current = now or utcnow()
            query = session.query(models.Notification.id).filter(self._claimable(current))
            if user_id is not None:
                query = query.filter(models.Notification.user_id == user_id)

            due_ids = [
                row.id for row in query.order_by(models.Notification.scheduled_for)
                .limit(limit or engine_config.DISPATCH_BATCH_LIMIT).all()
            ]

            counts: Counter = Counter()
            for notification_id in due_ids:
                claimed = session.execute(
                    update(models.Notification)
                    .where(and_(models.Notification.id == notification_id, self._claimable(current)))
                    .values(status=NotificationStatus.DISPATCHING.value, updated_at=current)
                    .execution_options(synchronize_session=False)
                ).rowcount
                session.commit()

                if not claimed:
                    continue

                try:
                    final_status = await self._process_claimed(session, notification_id, current)
                except SQLAlchemyError:
                    session.rollback()
                    logger.exception(f"Dispatch of notification {notification_id} failed, releasing claim")
                    self._release(session, notification_id, NotificationStatus.PENDING, None, current)
                    continue
                except Exception:
                    session.rollback()
                    logger.exception(f"Dispatch of notification {notification_id} failed")
                    self._release(session, notification_id, NotificationStatus.FAILED, "dispatch_error", current)
                    final_status = NotificationStatus.FAILED.value

                counts[final_status] += 1

            if due_ids:
                logger.info(f"Processed {sum(counts.values())} due notifications: {dict(counts)}")
            return dict(counts)

        if db:
            return await _process(db)

        with get_db_context() as session:
            return await _process(session)


# Singleton instance
notification_dispatcher = NotificationDispatcher()
