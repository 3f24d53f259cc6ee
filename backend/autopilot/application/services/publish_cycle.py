"""One publish attempt for one channel.

A cycle publishes at most the head of the channel's queue. It holds a
non-blocking lease on the channel's queue lock for its whole duration, so a
second trigger for the same channel returns ``locked`` and changes nothing.
A failed piece of the channel blocks every later cycle until the operator
retries or removes it.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from autopilot.application.services.queue_manager import QueueManager
from autopilot.application.services.settings_service import is_channel_enabled
from autopilot.core.config import settings
from autopilot.core.errors import AutopilotError, PersistenceError
from autopilot.domain.channels import parse_content_type
from autopilot.domain.models.content_piece import ContentPiece, ContentPieceStatus, ContentType
from autopilot.infrastructure.logging.context import reset_content_type, set_content_type
from autopilot.infrastructure.observability.metrics import (
    PUBLISH_ATTEMPTS_TOTAL,
    PUBLISH_CYCLES_TOTAL,
    PUBLISH_FAILURES_TOTAL,
    increment_background_counter,
)
from autopilot.integrations.publishing_channels import (
    AdapterError,
    BasePublishingChannel,
    PublishOutcome,
    get_publishing_channel,
)

logger = logging.getLogger(__name__)

ChannelResolver = Callable[[str, Session], BasePublishingChannel]


class PublishCycleStatus(StrEnum):
    DISABLED = "disabled"
    LOCKED = "locked"
    SKIPPED = "skipped"
    EMPTY = "empty"
    PUBLISHED = "published"
    FAILED = "failed"


@dataclass(frozen=True)
class PublishCycleResult:
    content_type: str
    status: PublishCycleStatus
    piece_id: UUID | None = None
    external_id: str | None = None
    slug: str | None = None
    error: str | None = None
    failed_piece_id: UUID | None = None
    retryable: bool | None = None

    def to_dict(self) -> dict:
        payload: dict = {"content_type": self.content_type, "status": self.status.value}
        if self.piece_id is not None:
            payload["piece_id"] = str(self.piece_id)
        if self.external_id is not None:
            payload["external_id"] = self.external_id
        if self.slug is not None:
            payload["slug"] = self.slug
        if self.error is not None:
            payload["error"] = self.error
        if self.failed_piece_id is not None:
            payload["failed_piece_id"] = str(self.failed_piece_id)
        if self.retryable is not None:
            payload["retryable"] = self.retryable
        return payload


class PublishCycle:
    def __init__(
        self,
        content_type: ContentType | str,
        *,
        queue_manager: QueueManager | None = None,
        channel_resolver: ChannelResolver = get_publishing_channel,
        publish_timeout_seconds: float | None = None,
        mirror_counters: bool = False,
    ) -> None:
        self.content_type = parse_content_type(content_type).value
        self.queue_manager = queue_manager or QueueManager()
        self.channel_resolver = channel_resolver
        self.publish_timeout_seconds = (
            settings.publish_timeout_seconds if publish_timeout_seconds is None else publish_timeout_seconds
        )
        # Worker processes mirror counters to Redis for the API process to export.
        self.mirror_counters = mirror_counters

    def run(self, db: Session) -> PublishCycleResult:
        context_token = set_content_type(self.content_type)
        try:
            with self.queue_manager.lock.try_hold(self.content_type) as acquired:
                if not acquired:
                    logger.info("publish_cycle_locked content_type=%s", self.content_type)
                    result = PublishCycleResult(content_type=self.content_type, status=PublishCycleStatus.LOCKED)
                else:
                    result = self._run_locked(db)
        finally:
            reset_content_type(context_token)
        PUBLISH_CYCLES_TOTAL.labels(content_type=self.content_type, status=result.status.value).inc()
        return result

    def _run_locked(self, db: Session) -> PublishCycleResult:
        if not is_channel_enabled(db, content_type=self.content_type):
            logger.info("publish_cycle_disabled content_type=%s", self.content_type)
            return PublishCycleResult(content_type=self.content_type, status=PublishCycleStatus.DISABLED)

        failed_piece_id = db.execute(
            select(ContentPiece.id)
            .where(
                ContentPiece.type == self.content_type,
                ContentPiece.status == ContentPieceStatus.FAILED.value,
            )
            .order_by(ContentPiece.updated_at.desc())
            .limit(1)
        ).scalar_one_or_none()
        if failed_piece_id is not None:
            logger.warning(
                "publish_cycle_skipped_failed_pending content_type=%s failed_piece_id=%s",
                self.content_type,
                failed_piece_id,
            )
            return PublishCycleResult(
                content_type=self.content_type,
                status=PublishCycleStatus.SKIPPED,
                failed_piece_id=failed_piece_id,
            )

        head = db.execute(
            select(ContentPiece)
            .where(
                ContentPiece.type == self.content_type,
                ContentPiece.status == ContentPieceStatus.QUEUED.value,
                ContentPiece.queue_position == 1,
            )
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if head is None:
            logger.info("publish_cycle_empty content_type=%s", self.content_type)
            return PublishCycleResult(content_type=self.content_type, status=PublishCycleStatus.EMPTY)

        piece_id = head.id
        self._count(PUBLISH_ATTEMPTS_TOTAL, "publish_attempts_total")
        logger.info("publish_cycle_started content_type=%s piece_id=%s", self.content_type, piece_id)

        try:
            channel = self.channel_resolver(self.content_type, db)
            outcome = asyncio.run(
                asyncio.wait_for(channel.publish(piece=head), timeout=self.publish_timeout_seconds)
            )
        except Exception as exc:
            error_message = self._describe_failure(exc)
            self._mark_failed(db, piece_id=piece_id, error_message=error_message)
            return PublishCycleResult(
                content_type=self.content_type,
                status=PublishCycleStatus.FAILED,
                piece_id=piece_id,
                error=error_message,
                retryable=self._is_retryable(exc),
            )

        self._mark_published(db, piece=head, outcome=outcome)
        logger.info(
            "publish_cycle_published content_type=%s piece_id=%s external_id=%s",
            self.content_type,
            piece_id,
            outcome.external_id,
        )
        return PublishCycleResult(
            content_type=self.content_type,
            status=PublishCycleStatus.PUBLISHED,
            piece_id=piece_id,
            external_id=outcome.external_id,
            slug=outcome.slug,
        )

    def _count(self, collector, metric_name: str) -> None:
        collector.inc()
        if self.mirror_counters:
            increment_background_counter(metric_name)

    @staticmethod
    def _is_retryable(exc: Exception) -> bool | None:
        if isinstance(exc, asyncio.TimeoutError):
            return True
        if isinstance(exc, AdapterError):
            return exc.retryable
        return None

    def _describe_failure(self, exc: Exception) -> str:
        if isinstance(exc, asyncio.TimeoutError):
            return f"Publishing timed out after {self.publish_timeout_seconds:g}s"
        return str(exc) or exc.__class__.__name__

    def _mark_published(self, db: Session, *, piece: ContentPiece, outcome: PublishOutcome) -> None:
        piece_id = piece.id
        try:
            piece.external_id = outcome.external_id
            piece.published_at = datetime.now(UTC)
            piece.error_message = None
            self.queue_manager.release(db, piece, ContentPieceStatus.PUBLISHED)
            self.queue_manager.verify(db, self.content_type)
            db.commit()
        except (SQLAlchemyError, AutopilotError) as exc:
            db.rollback()
            logger.exception(
                "publish_cycle_mark_published_failed content_type=%s piece_id=%s external_id=%s",
                self.content_type,
                piece_id,
                outcome.external_id,
            )
            # The channel already accepted the piece; keep the queue blocked so it is not published twice.
            self._mark_failed(
                db,
                piece_id=piece_id,
                error_message=(
                    f"Published with external id {outcome.external_id} but the result could not be saved: {exc}"
                ),
            )
            raise PersistenceError("Publish result could not be saved") from exc

    def _mark_failed(self, db: Session, *, piece_id: UUID, error_message: str) -> None:
        self._count(PUBLISH_FAILURES_TOTAL, "publish_failures_total")
        try:
            db.rollback()
            piece = db.execute(
                select(ContentPiece)
                .where(ContentPiece.id == piece_id)
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
            if piece is None:
                raise PersistenceError(f"Content {piece_id} disappeared while recording a publish failure")
            piece.error_message = error_message
            self.queue_manager.release(db, piece, ContentPieceStatus.FAILED)
            self.queue_manager.verify(db, self.content_type)
            db.commit()
        except (SQLAlchemyError, AutopilotError) as exc:
            db.rollback()
            logger.exception(
                "publish_cycle_mark_failed_failed content_type=%s piece_id=%s",
                self.content_type,
                piece_id,
            )
            if isinstance(exc, PersistenceError):
                raise
            raise PersistenceError("Publish failure could not be saved") from exc
        logger.warning(
            "publish_cycle_failed content_type=%s piece_id=%s error=%s",
            self.content_type,
            piece_id,
            error_message,
        )
