"""In-memory stand-ins for the content store, workflow store and directory.

Same method names and semantics as the real adapters, including the
compare-and-set on status. Any method named in `fail` raises StorageError.
"""

import asyncio
from collections import Counter
from typing import Dict, List, Optional

from app.achievements.achievement_errors import StorageError
from app.achievements.achievement_models import (
    AchievementContent,
    AchievementReference,
    AchievementStatus,
    AchievementType,
    LecturerRecord,
    ReconciliationFlag,
    StatusHistoryEntry,
    StudentRecord,
    utcnow,
)

STUDENT_USER = "u-student-1"
OTHER_STUDENT_USER = "u-student-2"
UNADVISED_STUDENT_USER = "u-student-3"
ADVISOR_USER = "u-advisor-1"
OTHER_ADVISOR_USER = "u-advisor-2"
ADMIN_USER = "u-admin"


class _FailureInjection:
    def __init__(self):
        self.fail = set()

    def _check(self, name: str):
        if name in self.fail:
            raise StorageError(f"{name} unavailable")


class FakeContentStore(_FailureInjection):
    def __init__(self):
        super().__init__()
        self.docs: Dict[str, AchievementContent] = {}

    def _live(self, content_id: str) -> Optional[AchievementContent]:
        doc = self.docs.get(content_id)
        if doc is None or doc.deleted_at is not None:
            return None
        return doc

    async def insert(self, content):
        self._check("insert")
        self.docs[content.content_id] = content.model_copy(deep=True)
        return content

    async def find_by_id(self, content_id):
        self._check("find_by_id")
        doc = self._live(content_id)
        return doc.model_copy(deep=True) if doc else None

    async def find_many(self, content_ids):
        self._check("find_many")
        found = {}
        for content_id in content_ids:
            doc = self._live(content_id)
            if doc:
                found[content_id] = doc.model_copy(deep=True)
        return found

    async def update(self, content):
        self._check("update")
        if self._live(content.content_id) is None:
            return False
        content.updated_at = utcnow()
        self.docs[content.content_id] = content.model_copy(deep=True)
        return True

    async def soft_delete(self, content_id):
        self._check("soft_delete")
        doc = self._live(content_id)
        if doc is None:
            return False
        doc.deleted_at = utcnow()
        return True

    async def delete(self, content_id):
        self._check("delete")
        return self.docs.pop(content_id, None) is not None

    async def ids_by_type(self, owner_ids, achievement_type):
        self._check("ids_by_type")
        return [
            doc.content_id for doc in self.docs.values()
            if doc.deleted_at is None
            and doc.achievement_type == achievement_type
            and (owner_ids is None or doc.owner_id in owner_ids)
        ]

    def _matching(self, content_ids):
        return [doc for doc in (self._live(cid) for cid in content_ids) if doc]

    async def count_by_type(self, content_ids):
        self._check("count_by_type")
        return dict(Counter(doc.achievement_type.value for doc in self._matching(content_ids)))

    async def count_by_competition_level(self, content_ids):
        self._check("count_by_competition_level")
        return dict(Counter(
            str(doc.details.get("competitionLevel", "unspecified"))
            for doc in self._matching(content_ids)
            if doc.achievement_type == AchievementType.COMPETITION
        ))

    async def points_by_owner(self, content_ids, limit=10):
        self._check("points_by_owner")
        totals: Dict[str, List[int]] = {}
        for doc in self._matching(content_ids):
            totals.setdefault(doc.owner_id, []).append(doc.points)
        rows = [
            {"student_id": owner, "total_points": sum(points), "achievements": len(points)}
            for owner, points in totals.items()
        ]
        rows.sort(key=lambda row: (-row["total_points"], row["student_id"]))
        return rows[:limit]


class FakeWorkflowStore(_FailureInjection):
    def __init__(self):
        super().__init__()
        self.references: Dict[str, AchievementReference] = {}
        self.history: List[StatusHistoryEntry] = []
        self.flags: List[ReconciliationFlag] = []
        # Next compare-and-set reports a miss as if another caller got there first
        self.lose_next_transition = False

    async def insert_reference(self, reference):
        self._check("insert_reference")
        self.references[reference.reference_id] = reference.model_copy()
        return reference

    async def get_reference(self, reference_id):
        self._check("get_reference")
        # Yield so concurrent callers interleave between read and write
        await asyncio.sleep(0)
        reference = self.references.get(reference_id)
        return reference.model_copy() if reference else None

    async def transition(self, reference_id, expected_status, new_status, **fields):
        self._check("transition")
        if self.lose_next_transition:
            self.lose_next_transition = False
            return None
        reference = self.references.get(reference_id)
        if reference is None or reference.status != expected_status:
            return None
        values = {"status": new_status, "updated_at": fields.pop("updated_at", utcnow())}
        values.update(fields)
        self.references[reference_id] = reference.model_copy(update=values)
        return self.references[reference_id].model_copy()

    async def delete_reference(self, reference_id, expected_status):
        self._check("delete_reference")
        reference = self.references.get(reference_id)
        if reference is None or reference.status != expected_status:
            return False
        del self.references[reference_id]
        return True

    def _scoped(self, owner_ids=None, status=None, content_ids=None):
        return [
            ref for ref in self.references.values()
            if (owner_ids is None or ref.owner_id in owner_ids)
            and (status is None or ref.status == status)
            and (content_ids is None or ref.content_id in content_ids)
        ]

    async def list_references(self, owner_ids=None, status=None, content_ids=None, limit=10, offset=0):
        self._check("list_references")
        refs = self._scoped(owner_ids, status, content_ids)
        refs.sort(key=lambda ref: ref.reference_id)
        refs.sort(key=lambda ref: ref.created_at, reverse=True)
        return [ref.model_copy() for ref in refs[offset:offset + limit]], len(refs)

    async def content_ids(self, owner_ids=None, status=None):
        self._check("content_ids")
        return [ref.content_id for ref in self._scoped(owner_ids, status)]

    async def count_by_status(self, owner_ids=None, status=None):
        self._check("count_by_status")
        return dict(Counter(ref.status.value for ref in self._scoped(owner_ids, status)))

    async def append_history(self, entry):
        self._check("append_history")
        self.history.append(entry.model_copy())
        return entry

    async def list_history(self, reference_id):
        self._check("list_history")
        entries = [entry for entry in self.history if entry.reference_id == reference_id]
        return sorted(entries, key=lambda entry: entry.changed_at)

    async def flag_for_reconciliation(self, flag):
        self._check("flag_for_reconciliation")
        self.flags.append(flag)
        return flag

    async def list_reconciliation_flags(self):
        return list(self.flags)


class FakeDirectory(_FailureInjection):
    def __init__(self, students: List[StudentRecord], lecturers: List[LecturerRecord]):
        super().__init__()
        self.students = {student.id: student for student in students}
        self.lecturers = {lecturer.id: lecturer for lecturer in lecturers}

    @classmethod
    def with_defaults(cls) -> "FakeDirectory":
        return cls(
            students=[
                StudentRecord(id="STU-1", user_id=STUDENT_USER, advisor_id="LEC-1", full_name="Ayu Lestari"),
                StudentRecord(id="STU-2", user_id=OTHER_STUDENT_USER, advisor_id="LEC-2", full_name="Budi Santoso"),
                StudentRecord(id="STU-3", user_id=UNADVISED_STUDENT_USER, advisor_id=None),
            ],
            lecturers=[
                LecturerRecord(id="LEC-1", user_id=ADVISOR_USER, full_name="Dr. Rina"),
                LecturerRecord(id="LEC-2", user_id=OTHER_ADVISOR_USER, full_name="Dr. Hadi"),
            ],
        )

    async def student_by_user_id(self, user_id):
        self._check("student_by_user_id")
        await asyncio.sleep(0)
        return next((s for s in self.students.values() if s.user_id == user_id), None)

    async def student_by_id(self, student_id):
        self._check("student_by_id")
        return self.students.get(student_id)

    async def lecturer_by_user_id(self, user_id):
        self._check("lecturer_by_user_id")
        return next((lec for lec in self.lecturers.values() if lec.user_id == user_id), None)

    async def advisee_ids(self, lecturer_id):
        self._check("advisee_ids")
        return [s.id for s in self.students.values() if s.advisor_id == lecturer_id]
