"""
Student / lecturer directory lookups.

The tables belong to the account service; this module only reads them.
"""

from typing import List, Optional

from sqlalchemy import String, select
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy.orm import Mapped, declarative_base, mapped_column

from app.achievements.achievement_models import LecturerRecord, StudentRecord
from app.achievements.workflow_store import wrap_sql_errors

DirectoryBase = declarative_base()


class StudentRow(DirectoryBase):
    __tablename__ = "students"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    advisor_id: Mapped[Optional[str]] = mapped_column(String(64), index=True)
    full_name: Mapped[Optional[str]] = mapped_column(String(255))
    student_number: Mapped[Optional[str]] = mapped_column(String(32))
    program_study: Mapped[Optional[str]] = mapped_column(String(255))
    academic_year: Mapped[Optional[str]] = mapped_column(String(16))


class LecturerRow(DirectoryBase):
    __tablename__ = "lecturers"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    full_name: Mapped[Optional[str]] = mapped_column(String(255))
    department: Mapped[Optional[str]] = mapped_column(String(255))


def _to_student(row: StudentRow) -> StudentRecord:
    return StudentRecord(
        id=row.id,
        user_id=row.user_id,
        advisor_id=row.advisor_id,
        full_name=row.full_name,
        student_number=row.student_number,
        program_study=row.program_study,
        academic_year=row.academic_year,
    )


class SqlDirectory:
    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    @wrap_sql_errors("student lookup")
    async def student_by_user_id(self, user_id: str) -> Optional[StudentRecord]:
        async with self.session_factory() as session:
            row = await session.scalar(select(StudentRow).where(StudentRow.user_id == user_id))
            return _to_student(row) if row else None

    @wrap_sql_errors("student lookup")
    async def student_by_id(self, student_id: str) -> Optional[StudentRecord]:
        async with self.session_factory() as session:
            row = await session.get(StudentRow, student_id)
            return _to_student(row) if row else None

    @wrap_sql_errors("lecturer lookup")
    async def lecturer_by_user_id(self, user_id: str) -> Optional[LecturerRecord]:
        async with self.session_factory() as session:
            row = await session.scalar(select(LecturerRow).where(LecturerRow.user_id == user_id))
            if not row:
                return None
            return LecturerRecord(
                id=row.id,
                user_id=row.user_id,
                full_name=row.full_name,
                department=row.department,
            )

    @wrap_sql_errors("advisee lookup")
    async def advisee_ids(self, lecturer_id: str) -> List[str]:
        async with self.session_factory() as session:
            rows = await session.scalars(select(StudentRow.id).where(StudentRow.advisor_id == lecturer_id))
            return list(rows)
