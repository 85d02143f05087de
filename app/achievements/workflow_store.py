"""
Workflow store adapter: achievement references, status history and
reconciliation flags in the relational database.

Owns no content. Status changes go through `transition`, a compare-and-set
update that only lands while the row still holds the expected status.
"""

import functools
import logging
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy import DateTime, Index, Integer, String, Text, delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy.orm import Mapped, declarative_base, mapped_column

from app.achievements.achievement_errors import StorageError
from app.achievements.achievement_models import (
    AchievementReference,
    AchievementStatus,
    ReconciliationFlag,
    StatusHistoryEntry,
    utcnow,
)

logger = logging.getLogger(__name__)

Base = declarative_base()


class ReferenceRow(Base):
    __tablename__ = "achievement_references"

    reference_id: Mapped[str] = mapped_column(String(32), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    content_id: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    verified_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    verified_by: Mapped[Optional[str]] = mapped_column(String(64))
    rejection_note: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


class HistoryRow(Base):
    """No foreign key: history outlives a deleted reference"""
    __tablename__ = "achievement_status_history"

    sequence: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    history_id: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    reference_id: Mapped[str] = mapped_column(String(32), nullable=False)
    old_status: Mapped[Optional[str]] = mapped_column(String(20))
    new_status: Mapped[str] = mapped_column(String(20), nullable=False)
    changed_by: Mapped[str] = mapped_column(String(64), nullable=False)
    note: Mapped[Optional[str]] = mapped_column(Text)
    changed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (Index("ix_history_reference_changed", "reference_id", "changed_at"),)


class ReconciliationFlagRow(Base):
    __tablename__ = "reconciliation_flags"

    flag_id: Mapped[str] = mapped_column(String(32), primary_key=True)
    content_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    reference_id: Mapped[Optional[str]] = mapped_column(String(32))
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


def wrap_sql_errors(operation: str):
    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except SQLAlchemyError as e:
                logger.warning("Workflow store %s failed: %s", operation, e)
                raise StorageError(f"Workflow store unavailable during {operation}") from e
        return wrapper
    return decorator


def _to_reference(row: ReferenceRow) -> AchievementReference:
    return AchievementReference(
        reference_id=row.reference_id,
        owner_id=row.owner_id,
        content_id=row.content_id,
        status=AchievementStatus(row.status),
        submitted_at=row.submitted_at,
        verified_at=row.verified_at,
        verified_by=row.verified_by,
        rejection_note=row.rejection_note,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _to_history(row: HistoryRow) -> StatusHistoryEntry:
    return StatusHistoryEntry(
        history_id=row.history_id,
        reference_id=row.reference_id,
        old_status=AchievementStatus(row.old_status) if row.old_status else None,
        new_status=AchievementStatus(row.new_status),
        changed_by=row.changed_by,
        note=row.note,
        changed_at=row.changed_at,
    )


def _scope(stmt, owner_ids: Optional[List[str]], status: Optional[AchievementStatus],
           content_ids: Optional[List[str]] = None):
    if owner_ids is not None:
        stmt = stmt.where(ReferenceRow.owner_id.in_(owner_ids))
    if status is not None:
        stmt = stmt.where(ReferenceRow.status == status.value)
    if content_ids is not None:
        stmt = stmt.where(ReferenceRow.content_id.in_(content_ids))
    return stmt


class SqlWorkflowStore:
    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    # ==================== REFERENCES ====================

    @wrap_sql_errors("insert")
    async def insert_reference(self, reference: AchievementReference) -> AchievementReference:
        async with self.session_factory() as session:
            session.add(ReferenceRow(
                reference_id=reference.reference_id,
                owner_id=reference.owner_id,
                content_id=reference.content_id,
                status=reference.status.value,
                submitted_at=reference.submitted_at,
                verified_at=reference.verified_at,
                verified_by=reference.verified_by,
                rejection_note=reference.rejection_note,
                created_at=reference.created_at,
                updated_at=reference.updated_at,
            ))
            await session.commit()
        return reference

    @wrap_sql_errors("select")
    async def get_reference(self, reference_id: str) -> Optional[AchievementReference]:
        async with self.session_factory() as session:
            row = await session.get(ReferenceRow, reference_id)
            return _to_reference(row) if row else None

    @wrap_sql_errors("transition")
    async def transition(
        self,
        reference_id: str,
        expected_status: AchievementStatus,
        new_status: AchievementStatus,
        **fields,
    ) -> Optional[AchievementReference]:
        """
        Compare-and-set the status column

        Returns:
            The updated reference, or None when the row no longer holds
            expected_status (or no longer exists)
        """
        values = {"status": new_status.value, "updated_at": fields.pop("updated_at", utcnow())}
        values.update(fields)
        async with self.session_factory() as session:
            result = await session.execute(
                update(ReferenceRow)
                .where(ReferenceRow.reference_id == reference_id)
                .where(ReferenceRow.status == expected_status.value)
                .values(**values)
            )
            await session.commit()
            if result.rowcount != 1:
                return None
            row = await session.get(ReferenceRow, reference_id, populate_existing=True)
            return _to_reference(row) if row else None

    @wrap_sql_errors("delete")
    async def delete_reference(self, reference_id: str, expected_status: AchievementStatus) -> bool:
        async with self.session_factory() as session:
            result = await session.execute(
                delete(ReferenceRow)
                .where(ReferenceRow.reference_id == reference_id)
                .where(ReferenceRow.status == expected_status.value)
            )
            await session.commit()
            return result.rowcount == 1

    @wrap_sql_errors("list")
    async def list_references(
        self,
        owner_ids: Optional[List[str]] = None,
        status: Optional[AchievementStatus] = None,
        content_ids: Optional[List[str]] = None,
        limit: int = 10,
        offset: int = 0,
    ) -> Tuple[List[AchievementReference], int]:
        """owner_ids/content_ids of None mean unrestricted; an empty list matches nothing"""
        if owner_ids == [] or content_ids == []:
            return [], 0
        async with self.session_factory() as session:
            total = await session.scalar(
                _scope(select(func.count()).select_from(ReferenceRow), owner_ids, status, content_ids)
            )
            rows = await session.scalars(
                _scope(select(ReferenceRow), owner_ids, status, content_ids)
                .order_by(ReferenceRow.created_at.desc(), ReferenceRow.reference_id)
                .limit(limit)
                .offset(offset)
            )
            return [_to_reference(row) for row in rows], total or 0

    @wrap_sql_errors("content id lookup")
    async def content_ids(
        self,
        owner_ids: Optional[List[str]] = None,
        status: Optional[AchievementStatus] = None,
    ) -> List[str]:
        if owner_ids == []:
            return []
        async with self.session_factory() as session:
            rows = await session.scalars(_scope(select(ReferenceRow.content_id), owner_ids, status))
            return list(rows)

    @wrap_sql_errors("status statistics")
    async def count_by_status(
        self,
        owner_ids: Optional[List[str]] = None,
        status: Optional[AchievementStatus] = None,
    ) -> Dict[str, int]:
        if owner_ids == []:
            return {}
        async with self.session_factory() as session:
            result = await session.execute(
                _scope(select(ReferenceRow.status, func.count()), owner_ids, status)
                .group_by(ReferenceRow.status)
            )
            return {status_value: count for status_value, count in result.all()}

    # ==================== HISTORY ====================

    @wrap_sql_errors("history append")
    async def append_history(self, entry: StatusHistoryEntry) -> StatusHistoryEntry:
        async with self.session_factory() as session:
            session.add(HistoryRow(
                history_id=entry.history_id,
                reference_id=entry.reference_id,
                old_status=entry.old_status.value if entry.old_status else None,
                new_status=entry.new_status.value,
                changed_by=entry.changed_by,
                note=entry.note,
                changed_at=entry.changed_at,
            ))
            await session.commit()
        return entry

    @wrap_sql_errors("history read")
    async def list_history(self, reference_id: str) -> List[StatusHistoryEntry]:
        async with self.session_factory() as session:
            rows = await session.scalars(
                select(HistoryRow)
                .where(HistoryRow.reference_id == reference_id)
                .order_by(HistoryRow.changed_at, HistoryRow.sequence)
            )
            return [_to_history(row) for row in rows]

    # ==================== RECONCILIATION ====================

    @wrap_sql_errors("reconciliation flag")
    async def flag_for_reconciliation(self, flag: ReconciliationFlag) -> ReconciliationFlag:
        async with self.session_factory() as session:
            session.add(ReconciliationFlagRow(
                flag_id=flag.flag_id,
                content_id=flag.content_id,
                reference_id=flag.reference_id,
                reason=flag.reason,
                created_at=flag.created_at,
            ))
            await session.commit()
        return flag

    @wrap_sql_errors("reconciliation read")
    async def list_reconciliation_flags(self) -> List[ReconciliationFlag]:
        async with self.session_factory() as session:
            rows = await session.scalars(
                select(ReconciliationFlagRow).order_by(ReconciliationFlagRow.created_at)
            )
            return [
                ReconciliationFlag(
                    flag_id=row.flag_id,
                    content_id=row.content_id,
                    reference_id=row.reference_id,
                    reason=row.reason,
                    created_at=row.created_at,
                )
                for row in rows
            ]
