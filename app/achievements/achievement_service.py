"""
Achievement lifecycle engine

Orchestrates the content store (documents) and the workflow store
(references + history) without a shared transaction:

- creation writes content first, then the reference (the visibility commit
  point); a failed reference write is compensated by deleting the content
- deletion removes the reference first, then soft-deletes the content
- every status write is a compare-and-set on the expected prior status
- authorization is checked before state validity

Anything left half-applied is logged and flagged for offline reconciliation.
"""

import logging
from typing import List, Optional

from app.achievements.achievement_errors import (
    AuthorizationError,
    ConsistencyError,
    InvalidTransitionError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from app.achievements.achievement_models import (
    AchievementContent,
    AchievementPage,
    AchievementReference,
    AchievementStatistics,
    AchievementStatus,
    AchievementType,
    AchievementView,
    Attachment,
    Principal,
    ReconciliationFlag,
    RoleCapability,
    StatusHistoryEntry,
    StudentRecord,
    StudentReport,
    TransitionResult,
    WorkflowAction,
    generate_id,
    utcnow,
)
from app.achievements.achievement_permissions import (
    can_view_student,
    check_advisor,
    check_owner,
    parse_role,
)
from app.achievements.achievement_schemas import (
    AchievementCreate,
    AchievementFilter,
    AchievementUpdate,
    AttachmentCreate,
)
from app.achievements.achievement_scoring import calculate_points
from app.achievements.achievement_statistics import collect_statistics
from app.achievements.achievement_workflow import (
    CREATION_NOTE,
    DEFAULT_NOTES,
    is_allowed,
    next_status,
    resolve_note,
)
from app.database.deadline import bounded

logger = logging.getLogger(__name__)


class AchievementService:
    def __init__(
        self,
        content_store,
        workflow_store,
        directory,
        store_timeout_seconds: float = 5.0,
        default_page_size: int = 10,
        max_page_size: int = 100,
    ):
        self.content = content_store
        self.workflow = workflow_store
        self.directory = directory
        self.store_timeout_seconds = store_timeout_seconds
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size

    # ==================== STORE ACCESS ====================

    async def _call(self, awaitable, operation: str, ignore_deadline: bool = False):
        return await bounded(awaitable, self.store_timeout_seconds, operation, ignore_deadline)

    async def _load_reference(self, reference_id: str) -> AchievementReference:
        reference = await self._call(self.workflow.get_reference(reference_id), "reference lookup")
        if reference is None:
            raise NotFoundError("Achievement not found")
        return reference

    async def _load_content(self, reference: AchievementReference) -> AchievementContent:
        content = await self._call(self.content.find_by_id(reference.content_id), "content lookup")
        if content is None:
            logger.error(
                "Reference %s points at missing content %s",
                reference.reference_id, reference.content_id,
            )
            raise NotFoundError("Achievement not found")
        return content

    async def _record_history(
        self,
        reference_id: str,
        old_status: Optional[AchievementStatus],
        new_status: AchievementStatus,
        actor_user_id: str,
        note: Optional[str],
    ) -> List[str]:
        """
        Append one history entry after a status write already landed

        Returns:
            Warnings for the caller; empty when the entry was recorded
        """
        entry = StatusHistoryEntry(
            history_id=generate_id("HIST"),
            reference_id=reference_id,
            old_status=old_status,
            new_status=new_status,
            changed_by=actor_user_id,
            note=note,
        )
        try:
            await self._call(self.workflow.append_history(entry), "history append")
            return []
        except StorageError:
            logger.warning(
                "History append failed for %s (%s -> %s); status change stands",
                reference_id, old_status, new_status.value, exc_info=True,
            )
            return [f"status changed to {new_status.value} but the history entry was not recorded"]

    async def _flag_orphan(self, content_id: str, reference_id: Optional[str], reason: str):
        logger.error(
            "Orphaned achievement content %s (reference %s) needs reconciliation: %s",
            content_id, reference_id, reason,
        )
        flag = ReconciliationFlag(
            flag_id=generate_id("RECON"),
            content_id=content_id,
            reference_id=reference_id,
            reason=reason,
        )
        try:
            await self._call(
                self.workflow.flag_for_reconciliation(flag), "reconciliation flag", ignore_deadline=True
            )
        except Exception:
            logger.error("Could not record reconciliation flag for content %s", content_id, exc_info=True)

    async def _raise_lost_race(self, reference_id: str, action: WorkflowAction):
        """The compare-and-set missed: report what the row holds now"""
        current = await self._call(self.workflow.get_reference(reference_id), "reference lookup")
        if current is None:
            raise NotFoundError("Achievement not found")
        logger.info(
            "Concurrent update on %s: %s lost against status %s",
            reference_id, action.value, current.status.value,
        )
        if not is_allowed(current.status, action):
            next_status(current.status, action)
        raise InvalidTransitionError(
            current.status.value,
            action.value,
            f"cannot {action.value} achievement: it was changed concurrently, reload and retry",
        )

    async def _student_name(self, student_id: str) -> Optional[str]:
        student = await self._call(self.directory.student_by_id(student_id), "student lookup")
        return student.full_name if student else None

    # ==================== AUTHORIZATION ====================

    async def _authorize_owner(self, actor_user_id: str, reference: AchievementReference) -> StudentRecord:
        student = await self._call(self.directory.student_by_user_id(actor_user_id), "student lookup")
        check_owner(student, reference)
        return student

    async def _authorize_advisor(self, actor_user_id: str, reference: AchievementReference):
        lecturer = await self._call(self.directory.lecturer_by_user_id(actor_user_id), "lecturer lookup")
        owner = None
        if lecturer is not None:
            owner = await self._call(self.directory.student_by_id(reference.owner_id), "student lookup")
        check_advisor(lecturer, owner, reference)

    # ==================== CREATION ====================

    def _parse_type(self, value) -> AchievementType:
        try:
            return AchievementType(value)
        except ValueError:
            allowed = ", ".join(t.value for t in AchievementType)
            raise ValidationError(f"Invalid achievement type '{value}'. Allowed: {allowed}")

    async def create(self, owner_user_id: str, request: AchievementCreate) -> AchievementView:
        """
        Create content + draft reference + creation history entry

        Raises:
            ValidationError: unknown type or empty title
            AuthorizationError: caller has no student profile
            ConsistencyError: reference write failed (content compensated)
            StorageError: content write failed
        """
        achievement_type = self._parse_type(request.achievement_type)
        title = (request.title or "").strip()
        if not title:
            raise ValidationError("Title is required")

        student = await self._call(self.directory.student_by_user_id(owner_user_id), "student lookup")
        if student is None:
            raise AuthorizationError("Only students can report achievements")

        now = utcnow()
        details = dict(request.details or {})
        content = AchievementContent(
            content_id=generate_id("ACH"),
            owner_id=student.id,
            achievement_type=achievement_type,
            title=title,
            description=request.description or "",
            details=details,
            tags=list(request.tags or []),
            points=calculate_points(achievement_type, details),
            created_at=now,
            updated_at=now,
        )
        await self._call(self.content.insert(content), "content insert")

        reference = AchievementReference(
            reference_id=generate_id("REF"),
            owner_id=student.id,
            content_id=content.content_id,
            status=AchievementStatus.DRAFT,
            created_at=now,
            updated_at=now,
        )
        try:
            await self._call(self.workflow.insert_reference(reference), "reference insert")
        except Exception as e:
            await self._compensate_creation(content.content_id, e)
            raise ConsistencyError("Achievement could not be recorded; the submitted content was discarded") from e

        warnings = await self._record_history(
            reference.reference_id, None, AchievementStatus.DRAFT, owner_user_id, CREATION_NOTE
        )
        logger.info("Achievement %s created by %s (%d points)", reference.reference_id, owner_user_id, content.points)

        view = AchievementView.merge(reference, content, student.full_name)
        view.warnings = warnings
        return view

    async def _compensate_creation(self, content_id: str, cause: Exception):
        try:
            await self._call(self.content.delete(content_id), "compensating delete", ignore_deadline=True)
            logger.warning("Reference insert failed; content %s removed: %s", content_id, cause)
        except Exception as e:
            logger.error("Compensating delete of content %s failed: %s", content_id, e)
            await self._flag_orphan(
                content_id, None, f"reference insert failed ({cause}); compensating delete failed ({e})"
            )

    # ==================== READ ====================

    async def get(self, reference_id: str) -> AchievementView:
        reference = await self._load_reference(reference_id)
        content = await self._load_content(reference)
        return AchievementView.merge(reference, content, await self._student_name(reference.owner_id))

    async def history(self, reference_id: str) -> List[StatusHistoryEntry]:
        await self._load_reference(reference_id)
        return await self._call(self.workflow.list_history(reference_id), "history read")

    # ==================== CONTENT EDITS ====================

    async def update(self, reference_id: str, actor_user_id: str, patch: AchievementUpdate) -> AchievementView:
        """
        Owner edit while draft or rejected; points are recomputed and a
        rejected achievement returns to draft with its note cleared

        Raises:
            AuthorizationError, InvalidTransitionError, NotFoundError
        """
        reference = await self._load_reference(reference_id)
        owner = await self._authorize_owner(actor_user_id, reference)
        next_status(reference.status, WorkflowAction.EDIT)
        content = await self._load_content(reference)

        if patch.title is not None and patch.title.strip():
            content.title = patch.title.strip()
        if patch.description:
            content.description = patch.description
        if patch.details is not None:
            content.details = dict(patch.details)
        if patch.tags is not None:
            content.tags = list(patch.tags)

        return await self._commit_edit(reference, content, owner, actor_user_id)

    async def add_attachment(
        self, reference_id: str, actor_user_id: str, attachment: AttachmentCreate
    ) -> AchievementView:
        reference = await self._load_reference(reference_id)
        owner = await self._authorize_owner(actor_user_id, reference)
        next_status(reference.status, WorkflowAction.EDIT)
        content = await self._load_content(reference)

        content.attachments.append(Attachment(
            file_name=attachment.file_name,
            file_url=attachment.file_url,
            file_type=attachment.file_type,
        ))
        return await self._commit_edit(reference, content, owner, actor_user_id)

    async def _commit_edit(
        self,
        reference: AchievementReference,
        content: AchievementContent,
        owner: StudentRecord,
        actor_user_id: str,
    ) -> AchievementView:
        """
        Claim the reference (draft or rejected -> draft), write the content,
        then record the revision

        A rejected claim whose content write does not land is rolled back to
        rejected with its note; if that fails too it is flagged.

        Raises:
            ConsistencyError: content write failed after a rejected claim
            StorageError: content write failed on a draft
            NotFoundError: content document disappeared
        """
        content.points = calculate_points(content.achievement_type, content.details)
        was_rejected = reference.status == AchievementStatus.REJECTED

        # Claim the reference before touching content so a concurrent submit
        # cannot slip in between the check and the write
        claimed = await self._call(
            self.workflow.transition(
                reference.reference_id,
                reference.status,
                AchievementStatus.DRAFT,
                rejection_note=None,
            ),
            "reference transition",
        )
        if claimed is None:
            await self._raise_lost_race(reference.reference_id, WorkflowAction.EDIT)

        try:
            updated = await self._call(self.content.update(content), "content update")
        except StorageError as e:
            if not was_rejected:
                raise
            await self._restore_rejection(reference, actor_user_id, e)
            raise ConsistencyError("Achievement could not be updated; its rejection was kept") from e

        if not updated:
            logger.error("Content %s vanished during edit of %s", content.content_id, reference.reference_id)
            if was_rejected:
                await self._restore_rejection(reference, actor_user_id, "content document missing")
            raise NotFoundError("Achievement not found")

        warnings: List[str] = []
        if was_rejected:
            warnings += await self._record_history(
                reference.reference_id,
                AchievementStatus.REJECTED,
                AchievementStatus.DRAFT,
                actor_user_id,
                DEFAULT_NOTES[WorkflowAction.EDIT],
            )

        view = AchievementView.merge(claimed, content, owner.full_name)
        view.warnings = warnings
        return view

    async def _restore_rejection(self, reference: AchievementReference, actor_user_id: str, cause):
        """Put a claimed reference back to rejected with its original note"""
        try:
            restored = await self._call(
                self.workflow.transition(
                    reference.reference_id,
                    AchievementStatus.DRAFT,
                    AchievementStatus.REJECTED,
                    rejection_note=reference.rejection_note,
                    updated_at=reference.updated_at,
                ),
                "compensating transition",
                ignore_deadline=True,
            )
        except Exception as e:
            logger.error("Compensating transition of %s failed: %s", reference.reference_id, e)
            restored = None

        if restored is not None:
            logger.warning("Edit of %s failed (%s); rejection restored", reference.reference_id, cause)
            return

        # The reference stays draft: record the move so history still replays to it
        await self._record_history(
            reference.reference_id,
            AchievementStatus.REJECTED,
            AchievementStatus.DRAFT,
            actor_user_id,
            f"{DEFAULT_NOTES[WorkflowAction.EDIT]}; content update failed",
        )
        await self._flag_orphan(
            reference.content_id,
            reference.reference_id,
            f"reference reset to draft but content update failed ({cause}); rejection could not be restored",
        )

    # ==================== DELETION ====================

    async def delete(self, reference_id: str, actor_user_id: str) -> None:
        """
        Remove a draft achievement: reference first, then soft-delete content

        Raises:
            AuthorizationError, InvalidTransitionError ("can only delete draft"),
            ConsistencyError: reference removed but content could not be
            soft-deleted (flagged for reconciliation)
        """
        reference = await self._load_reference(reference_id)
        await self._authorize_owner(actor_user_id, reference)
        next_status(reference.status, WorkflowAction.DELETE)

        removed = await self._call(
            self.workflow.delete_reference(reference_id, AchievementStatus.DRAFT), "reference delete"
        )
        if not removed:
            await self._raise_lost_race(reference_id, WorkflowAction.DELETE)

        try:
            found = await self._call(
                self.content.soft_delete(reference.content_id), "content delete", ignore_deadline=True
            )
        except Exception as e:
            await self._flag_orphan(reference.content_id, reference_id, f"reference deleted; content delete failed ({e})")
            raise ConsistencyError("Achievement removed but its content could not be cleaned up") from e

        if not found:
            logger.warning("Content %s was already gone when deleting %s", reference.content_id, reference_id)
        logger.info("Achievement %s deleted by %s", reference_id, actor_user_id)

    # ==================== TRANSITIONS ====================

    async def submit(self, reference_id: str, actor_user_id: str, note: Optional[str] = None) -> TransitionResult:
        reference = await self._load_reference(reference_id)
        await self._authorize_owner(actor_user_id, reference)
        new_status = next_status(reference.status, WorkflowAction.SUBMIT)
        note = resolve_note(WorkflowAction.SUBMIT, note)

        now = utcnow()
        return await self._apply_transition(
            reference, WorkflowAction.SUBMIT, new_status, actor_user_id, note,
            submitted_at=now, rejection_note=None, updated_at=now,
        )

    async def verify(self, reference_id: str, actor_user_id: str, note: Optional[str] = None) -> TransitionResult:
        reference = await self._load_reference(reference_id)
        await self._authorize_advisor(actor_user_id, reference)
        new_status = next_status(reference.status, WorkflowAction.VERIFY)
        note = resolve_note(WorkflowAction.VERIFY, note)

        now = utcnow()
        return await self._apply_transition(
            reference, WorkflowAction.VERIFY, new_status, actor_user_id, note,
            verified_at=now, verified_by=actor_user_id, updated_at=now,
        )

    async def reject(self, reference_id: str, actor_user_id: str, note: Optional[str] = None) -> TransitionResult:
        reference = await self._load_reference(reference_id)
        await self._authorize_advisor(actor_user_id, reference)
        new_status = next_status(reference.status, WorkflowAction.REJECT)
        note = resolve_note(WorkflowAction.REJECT, note)

        now = utcnow()
        return await self._apply_transition(
            reference, WorkflowAction.REJECT, new_status, actor_user_id, note,
            rejection_note=note, updated_at=now,
        )

    async def _apply_transition(
        self,
        reference: AchievementReference,
        action: WorkflowAction,
        new_status: AchievementStatus,
        actor_user_id: str,
        note: Optional[str],
        **fields,
    ) -> TransitionResult:
        updated = await self._call(
            self.workflow.transition(reference.reference_id, reference.status, new_status, **fields),
            "reference transition",
        )
        if updated is None:
            await self._raise_lost_race(reference.reference_id, action)

        warnings = await self._record_history(
            reference.reference_id, reference.status, new_status, actor_user_id, note
        )
        logger.info(
            "Achievement %s: %s -> %s by %s",
            reference.reference_id, reference.status.value, new_status.value, actor_user_id,
        )
        return TransitionResult(
            reference_id=reference.reference_id,
            old_status=reference.status,
            new_status=new_status,
            changed_at=updated.updated_at,
            warnings=warnings,
        )

    # ==================== LISTING ====================

    async def _scope_owner_ids(self, principal: Principal) -> Optional[List[str]]:
        """Student: own; advisor: advisees; admin: None (everyone)"""
        role = parse_role(principal.role)
        if role == RoleCapability.ADMIN:
            return None
        if role == RoleCapability.STUDENT:
            student = await self._call(self.directory.student_by_user_id(principal.user_id), "student lookup")
            if student is None:
                raise AuthorizationError("Student profile not found")
            return [student.id]
        lecturer = await self._call(self.directory.lecturer_by_user_id(principal.user_id), "lecturer lookup")
        if lecturer is None:
            raise AuthorizationError("Lecturer profile not found")
        return await self._call(self.directory.advisee_ids(lecturer.id), "advisee lookup")

    def _page_window(self, page: int, limit: Optional[int]):
        if page < 1:
            raise ValidationError("page must be 1 or greater")
        if limit is None:
            limit = self.default_page_size
        if limit < 1:
            raise ValidationError("limit must be 1 or greater")
        limit = min(limit, self.max_page_size)
        return limit, (page - 1) * limit

    async def _list(
        self,
        owner_ids: Optional[List[str]],
        status: Optional[AchievementStatus],
        achievement_type: Optional[AchievementType],
        page: int,
        limit: Optional[int],
    ) -> AchievementPage:
        limit, offset = self._page_window(page, limit)

        content_ids = None
        if achievement_type is not None:
            content_ids = await self._call(self.content.ids_by_type(owner_ids, achievement_type), "type lookup")

        references, total = await self._call(
            self.workflow.list_references(owner_ids, status, content_ids, limit, offset), "reference list"
        )
        contents = await self._call(
            self.content.find_many([ref.content_id for ref in references]), "content lookup"
        )
        names = {}
        for owner_id in {ref.owner_id for ref in references}:
            names[owner_id] = await self._student_name(owner_id)

        items = []
        for ref in references:
            content = contents.get(ref.content_id)
            if content is None:
                logger.warning("Reference %s has no content document %s", ref.reference_id, ref.content_id)
                continue
            items.append(AchievementView.merge(ref, content, names.get(ref.owner_id)))

        return AchievementPage(items=items, total=total, page=page, limit=limit)

    async def list_for_role(self, principal: Principal, filters: AchievementFilter) -> AchievementPage:
        owner_ids = await self._scope_owner_ids(principal)
        return await self._list(owner_ids, filters.status, filters.achievement_type, filters.page, filters.limit)

    # ==================== STATISTICS ====================

    async def statistics(
        self,
        owner_ids: Optional[List[str]] = None,
        status: Optional[AchievementStatus] = None,
    ) -> AchievementStatistics:
        return await collect_statistics(self.content, self.workflow, self._call, owner_ids, status)

    async def statistics_for_role(
        self, principal: Principal, status: Optional[AchievementStatus] = None
    ) -> AchievementStatistics:
        owner_ids = await self._scope_owner_ids(principal)
        return await self.statistics(owner_ids, status)

    async def student_report(
        self, principal: Principal, student_id: str, page: int = 1, limit: Optional[int] = None
    ) -> StudentReport:
        """Student info, statistics and achievements for one student"""
        role = parse_role(principal.role)
        student = await self._call(self.directory.student_by_id(student_id), "student lookup")
        if student is None:
            raise NotFoundError("Student not found")
        lecturer = None
        if role == RoleCapability.ADVISOR:
            lecturer = await self._call(self.directory.lecturer_by_user_id(principal.user_id), "lecturer lookup")
        if not can_view_student(principal, student, lecturer):
            raise AuthorizationError("Not authorized to view this student's report")

        statistics = await self.statistics([student.id])
        achievements = await self._list([student.id], None, None, page, limit)
        return StudentReport(student=student, statistics=statistics, achievements=achievements.items)
