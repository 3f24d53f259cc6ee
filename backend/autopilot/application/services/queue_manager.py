"""Per-channel publishing queues.

Each content type owns a dense, 1-indexed sequence of positions among its
queued pieces: positions are always exactly ``1..N``. Every public operation
runs under the type's ``QueueLock`` and inside a single transaction that
ends with a density check, so a caller either sees the whole change or none
of it.

Moves are expressed as the minimal set of +1/-1 shifts on the other rows.
Each shifted row is written with an ``UPDATE ... WHERE queue_position =
<value read under the lock>``; a row count mismatch means someone bypassed
the lock and the operation aborts with ``ConflictError``.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from autopilot.core.errors import AutopilotError, ConflictError, NotFoundError, PersistenceError, ValidationError
from autopilot.domain.channels import parse_content_type
from autopilot.domain.models.content_piece import ContentPiece, ContentPieceStatus, ContentType
from autopilot.infrastructure.locks import QueueLock, get_queue_lock
from autopilot.infrastructure.observability.metrics import QUEUE_CONFLICTS_TOTAL

logger = logging.getLogger(__name__)

QueueLayout = list[tuple[UUID, int]]


@dataclass(frozen=True)
class PositionShift:
    piece_id: UUID
    expected_position: int
    new_position: int


@dataclass(frozen=True)
class ReorderResult:
    piece: ContentPiece
    changed: bool
    old_position: int | None
    new_position: int


def plan_removal_shifts(layout: QueueLayout, *, removed_position: int) -> list[PositionShift]:
    return [
        PositionShift(piece_id=item_id, expected_position=position, new_position=position - 1)
        for item_id, position in layout
        if position > removed_position
    ]


def plan_reorder_shifts(
    layout: QueueLayout,
    *,
    piece_id: UUID,
    old_position: int | None,
    new_position: int,
) -> list[PositionShift]:
    shifts: list[PositionShift] = []
    for item_id, position in layout:
        if item_id == piece_id:
            continue
        if old_position is None:
            if position >= new_position:
                shifts.append(PositionShift(item_id, position, position + 1))
        elif new_position < old_position:
            if new_position <= position < old_position:
                shifts.append(PositionShift(item_id, position, position + 1))
        elif new_position > old_position:
            if old_position < position <= new_position:
                shifts.append(PositionShift(item_id, position, position - 1))
    return shifts


def clamp_target_position(*, queue_length: int, old_position: int | None, new_position: int) -> int:
    # A queued piece can move to the tail (N); an unqueued one can append at N + 1.
    max_position = queue_length if old_position is not None else queue_length + 1
    return max(1, min(new_position, max_position))


class QueueManager:
    def __init__(self, lock: QueueLock | None = None) -> None:
        self.lock = lock or get_queue_lock()

    def snapshot(self, db: Session, content_type: ContentType | str) -> list[ContentPiece]:
        normalized = parse_content_type(content_type)
        return list(
            db.execute(
                select(ContentPiece)
                .where(
                    ContentPiece.type == normalized.value,
                    ContentPiece.status == ContentPieceStatus.QUEUED.value,
                    ContentPiece.queue_position.is_not(None),
                )
                .order_by(ContentPiece.queue_position.asc())
            ).scalars().all()
        )

    def insert(self, db: Session, piece_id: UUID) -> ContentPiece:
        piece = self._get_piece(db, piece_id)
        with self.lock.hold([piece.type]), self._unit_of_work(db, [piece.type]):
            piece = self._get_piece(db, piece_id, lock_row=True)
            self._ensure_can_enter_queue(piece)
            position = self._max_position(self._read_layout(db, piece.type)) + 1
            self._enqueue(piece, position)
        logger.info(
            "queue_item_inserted piece_id=%s content_type=%s position=%s",
            piece.id,
            piece.type,
            position,
        )
        return piece

    def insert_many(self, db: Session, piece_ids: list[UUID]) -> list[ContentPiece]:
        """Append pieces in caller order; positions come from one snapshot per type."""
        if not piece_ids:
            raise ValidationError("At least one content id is required")
        if len(set(piece_ids)) != len(piece_ids):
            raise ValidationError("Duplicate content ids in request")

        content_types = {piece.type for piece in self._get_pieces(db, piece_ids)}
        with self.lock.hold(content_types), self._unit_of_work(db, content_types):
            pieces = self._get_pieces(db, piece_ids, lock_rows=True)
            for piece in pieces:
                self._ensure_can_enter_queue(piece)
            next_position = {
                content_type: self._max_position(self._read_layout(db, content_type)) + 1
                for content_type in content_types
            }
            for piece in pieces:
                self._enqueue(piece, next_position[piece.type])
                next_position[piece.type] += 1
        logger.info(
            "queue_items_inserted count=%s content_types=%s",
            len(pieces),
            ",".join(sorted(content_types)),
        )
        return pieces

    def remove(self, db: Session, piece_id: UUID) -> ContentPiece:
        piece = self._get_piece(db, piece_id)
        with self.lock.hold([piece.type]), self._unit_of_work(db, [piece.type]):
            piece = self._get_piece(db, piece_id, lock_row=True)
            if piece.status == ContentPieceStatus.PUBLISHED.value:
                raise ValidationError("Published content cannot be returned to drafts", error_code="already_published")
            old_position = self._detach(db, piece, ContentPieceStatus.DRAFT)
        logger.info(
            "queue_item_removed piece_id=%s content_type=%s position=%s",
            piece.id,
            piece.type,
            old_position,
        )
        return piece

    def reorder(
        self,
        db: Session,
        piece_id: UUID,
        new_position: int,
        content_type: ContentType | str,
    ) -> ReorderResult:
        if new_position < 1:
            raise ValidationError("new_position must be a positive integer", error_code="invalid_position")
        normalized = parse_content_type(content_type)
        self._get_piece(db, piece_id, content_type=normalized)

        with self.lock.hold([normalized.value]), self._unit_of_work(db, [normalized.value]):
            piece = self._get_piece(db, piece_id, content_type=normalized, lock_row=True)
            if piece.status not in {ContentPieceStatus.DRAFT.value, ContentPieceStatus.QUEUED.value}:
                raise ValidationError(
                    f"Content in status '{piece.status}' cannot be reordered",
                    error_code="invalid_status",
                )
            layout = self._read_layout(db, normalized.value)
            old_position = piece.queue_position
            target = clamp_target_position(
                queue_length=len(layout),
                old_position=old_position,
                new_position=new_position,
            )
            if old_position == target:
                return ReorderResult(piece=piece, changed=False, old_position=old_position, new_position=target)

            shifts = plan_reorder_shifts(layout, piece_id=piece.id, old_position=old_position, new_position=target)
            self._apply_shifts(db, normalized.value, shifts)
            self._enqueue(piece, target)

        logger.info(
            "queue_item_reordered piece_id=%s content_type=%s old_position=%s new_position=%s shifted=%s",
            piece.id,
            normalized.value,
            old_position,
            target,
            len(shifts),
        )
        return ReorderResult(piece=piece, changed=True, old_position=old_position, new_position=target)

    def retry(self, db: Session, piece_id: UUID) -> ContentPiece:
        piece = self._get_piece(db, piece_id, status=ContentPieceStatus.FAILED)
        with self.lock.hold([piece.type]), self._unit_of_work(db, [piece.type]):
            piece = self._get_piece(db, piece_id, status=ContentPieceStatus.FAILED, lock_row=True)
            position = self._max_position(self._read_layout(db, piece.type)) + 1
            self._enqueue(piece, position)
        logger.info(
            "queue_item_retried piece_id=%s content_type=%s position=%s",
            piece.id,
            piece.type,
            position,
        )
        return piece

    def release(self, db: Session, piece: ContentPiece, status: ContentPieceStatus) -> int | None:
        """Take a piece out of its queue and close the gap, without committing.

        The caller must already hold the lock for ``piece.type``.
        """
        return self._detach(db, piece, status)

    def verify(self, db: Session, content_type: ContentType | str) -> None:
        self._verify_dense(db, parse_content_type(content_type).value)

    @contextmanager
    def _unit_of_work(self, db: Session, content_types: Iterable[str]) -> Iterator[None]:
        try:
            yield
            db.flush()
            for content_type in sorted(set(content_types)):
                self._verify_dense(db, content_type)
            db.commit()
        except ConflictError:
            db.rollback()
            for content_type in set(content_types):
                QUEUE_CONFLICTS_TOTAL.labels(content_type=content_type).inc()
            raise
        except AutopilotError:
            db.rollback()
            raise
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("queue_persistence_failed content_types=%s", ",".join(sorted(set(content_types))))
            raise PersistenceError("Queue update could not be saved") from exc

    def _detach(self, db: Session, piece: ContentPiece, status: ContentPieceStatus) -> int | None:
        old_position = piece.queue_position
        layout = self._read_layout(db, piece.type) if old_position is not None else []
        piece.status = status.value
        piece.queue_position = None
        db.flush()
        if old_position is not None:
            shifts = plan_removal_shifts(
                [(item_id, position) for item_id, position in layout if item_id != piece.id],
                removed_position=old_position,
            )
            self._apply_shifts(db, piece.type, shifts)
        return old_position

    def _apply_shifts(self, db: Session, content_type: str, shifts: list[PositionShift]) -> None:
        for shift in shifts:
            result = db.execute(
                update(ContentPiece)
                .where(
                    ContentPiece.id == shift.piece_id,
                    ContentPiece.type == content_type,
                    ContentPiece.status == ContentPieceStatus.QUEUED.value,
                    ContentPiece.queue_position == shift.expected_position,
                )
                .values(queue_position=shift.new_position)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                logger.warning(
                    "queue_shift_conflict content_type=%s piece_id=%s expected_position=%s",
                    content_type,
                    shift.piece_id,
                    shift.expected_position,
                )
                raise ConflictError(f"Queue for '{content_type}' changed during the update, retry the operation")

    def _verify_dense(self, db: Session, content_type: str) -> None:
        positions = list(
            db.execute(
                select(ContentPiece.queue_position)
                .where(
                    ContentPiece.type == content_type,
                    ContentPiece.status == ContentPieceStatus.QUEUED.value,
                )
                .order_by(ContentPiece.queue_position.asc())
            ).scalars().all()
        )
        if positions != list(range(1, len(positions) + 1)):
            logger.error("queue_density_violation content_type=%s positions=%s", content_type, positions)
            raise ConflictError(f"Queue for '{content_type}' is inconsistent, the operation was rolled back")

    @staticmethod
    def _read_layout(db: Session, content_type: str) -> QueueLayout:
        rows = db.execute(
            select(ContentPiece.id, ContentPiece.queue_position)
            .where(
                ContentPiece.type == content_type,
                ContentPiece.status == ContentPieceStatus.QUEUED.value,
                ContentPiece.queue_position.is_not(None),
            )
            .order_by(ContentPiece.queue_position.asc())
            .with_for_update()
        ).all()
        return [(row.id, row.queue_position) for row in rows]

    @staticmethod
    def _max_position(layout: QueueLayout) -> int:
        return max((position for _, position in layout), default=0)

    @staticmethod
    def _enqueue(piece: ContentPiece, position: int) -> None:
        piece.status = ContentPieceStatus.QUEUED.value
        piece.queue_position = position
        piece.error_message = None

    @staticmethod
    def _ensure_can_enter_queue(piece: ContentPiece) -> None:
        if piece.status == ContentPieceStatus.QUEUED.value:
            raise ValidationError(f"Content {piece.id} is already queued", error_code="already_queued")
        if piece.status == ContentPieceStatus.PUBLISHED.value:
            raise ValidationError(f"Content {piece.id} is already published", error_code="already_published")

    @staticmethod
    def _get_piece(
        db: Session,
        piece_id: UUID,
        *,
        content_type: ContentType | None = None,
        status: ContentPieceStatus | None = None,
        lock_row: bool = False,
    ) -> ContentPiece:
        query = select(ContentPiece).where(ContentPiece.id == piece_id)
        if content_type is not None:
            query = query.where(ContentPiece.type == content_type.value)
        if status is not None:
            query = query.where(ContentPiece.status == status.value)
        if lock_row:
            query = query.with_for_update()
        piece = db.execute(query.execution_options(populate_existing=True)).scalar_one_or_none()
        if piece is None:
            if status == ContentPieceStatus.FAILED:
                raise NotFoundError("Failed content not found")
            raise NotFoundError("Content not found")
        return piece

    @staticmethod
    def _get_pieces(db: Session, piece_ids: list[UUID], *, lock_rows: bool = False) -> list[ContentPiece]:
        query = select(ContentPiece).where(ContentPiece.id.in_(piece_ids))
        if lock_rows:
            query = query.with_for_update()
        rows = db.execute(query.execution_options(populate_existing=True)).scalars().all()
        by_id = {row.id: row for row in rows}
        missing = [str(piece_id) for piece_id in piece_ids if piece_id not in by_id]
        if missing:
            raise NotFoundError(f"Content not found: {', '.join(missing)}")
        return [by_id[piece_id] for piece_id in piece_ids]
