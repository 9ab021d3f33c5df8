"""Meeting scheduling and lifecycle endpoints."""

from datetime import datetime
from typing import Any, NoReturn

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field

from portal.api.deps import get_acting_user, get_state_machine
from portal.config import get_settings
from portal.errors import ConflictError, PortalError
from portal.meetings.schemas import MeetingCreate, MeetingReschedule, ParticipantInput
from portal.meetings.state_machine import MeetingStateMachine
from portal.models.meeting import Meeting, MeetingStatus, MeetingType
from portal.models.participant import ActingUser, Role
from portal.repositories.meeting_repo import MeetingFilter

logger = structlog.get_logger()
router = APIRouter(prefix="/meetings", tags=["meetings"])


class MeetingCreateRequest(BaseModel):
    """Request body for scheduling a meeting."""

    model_config = ConfigDict(str_strip_whitespace=True)

    title: str | None = Field(default=None, description="Meeting title")
    description: str = Field(default="", description="Agenda or context")
    teacher: str | None = Field(
        default=None, description="Organizer id (defaults to the caller)"
    )
    teacher_name: str = ""
    parent: str | None = Field(default=None, description="Parent user id")
    parent_name: str = ""
    student: str | None = Field(default=None, description="Student user id")
    student_name: str = ""
    start_time: datetime | None = None
    end_time: datetime | None = None
    meeting_type: str = Field(default="offline", description="offline/online or 线下/线上")
    location: str | None = Field(default=None, description="Required for offline meetings")
    meeting_link: str | None = Field(
        default=None, description="Online link; generated when omitted"
    )
    notes: str = ""

    def to_command(self) -> MeetingCreate:
        def participant(user_id: str | None, name: str) -> ParticipantInput | None:
            return ParticipantInput(id=user_id, name=name) if user_id else None

        return MeetingCreate(
            title=self.title,
            description=self.description,
            organizer=participant(self.teacher, self.teacher_name),
            parent=participant(self.parent, self.parent_name),
            student=participant(self.student, self.student_name),
            start_time=self.start_time,
            end_time=self.end_time,
            meeting_type=self.meeting_type,
            location=self.location,
            link=self.meeting_link,
            notes=self.notes,
        )


class StatusUpdateRequest(BaseModel):
    """Request body for a status change."""

    status: str = Field(description="Target status value or label")
    notes: str | None = None
    expected_version: int | None = Field(
        default=None, description="Reject the change if the stored version differs"
    )


class MeetingUpdateRequest(BaseModel):
    """Request body for rescheduling; omitted fields keep their value."""

    model_config = ConfigDict(str_strip_whitespace=True)

    title: str | None = None
    description: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    meeting_type: str | None = Field(default=None, description="offline/online or 线下/线上")
    location: str | None = None
    meeting_link: str | None = None
    notes: str | None = None
    expected_version: int | None = Field(
        default=None, description="Reject the change if the stored version differs"
    )

    def to_command(self) -> MeetingReschedule:
        return MeetingReschedule(
            title=self.title,
            description=self.description,
            start_time=self.start_time,
            end_time=self.end_time,
            meeting_type=self.meeting_type,
            location=self.location,
            link=self.meeting_link,
            notes=self.notes,
        )


class CancelRequest(BaseModel):
    reason: str | None = None


class FeedbackRequest(BaseModel):
    feedback: str = ""


class Pagination(BaseModel):
    total: int
    limit: int
    skip: int


class MeetingListResponse(BaseModel):
    """Response model for a page of meetings."""

    data: list[Meeting]
    pagination: Pagination


def _raise_http(error: PortalError) -> NoReturn:
    """Translate a domain error into its HTTP response."""
    detail: Any = error.message
    if isinstance(error, ConflictError) and error.conflict_with:
        detail = {"message": error.message, "conflict_with": error.conflict_with}
    raise HTTPException(status_code=error.status_code, detail=detail) from error


def _raise_internal(message: str, error: Exception) -> NoReturn:
    logger.error(message, error=str(error))
    detail: dict[str, str] = {"message": message}
    if not get_settings().is_production:
        detail["error"] = str(error)
    raise HTTPException(status_code=500, detail=detail) from error


def _parse_enum(enum_cls: type, value: str | None, field: str) -> Any:
    if value is None:
        return None
    try:
        return enum_cls(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"无效的{field}: {value}") from None


@router.post("", response_model=Meeting, status_code=201)
async def create_meeting(
    request: MeetingCreateRequest,
    acting_user: ActingUser = Depends(get_acting_user),
    state_machine: MeetingStateMachine = Depends(get_state_machine),
) -> Meeting:
    """Schedule a meeting between a teacher and a parent.

    Returns:
        The stored meeting in status ``scheduled``

    Raises:
        HTTPException: 400 missing or invalid fields, 403 caller is not a
            teacher or admin, 409 time conflict for organizer or parent
    """
    try:
        return await state_machine.create(request.to_command(), acting_user)
    except PortalError as e:
        _raise_http(e)
    except Exception as e:
        _raise_internal("创建会议失败", e)


@router.get("", response_model=MeetingListResponse)
async def list_meetings(
    meeting_type: str | None = Query(default=None, description="offline/online"),
    status: str | None = Query(default=None, description="Status value or label"),
    organizer: str | None = Query(default=None, description="Organizer user id"),
    parent: str | None = Query(default=None, description="Parent user id"),
    student: str | None = Query(default=None, description="Student user id"),
    start_date: datetime | None = Query(default=None, description="Starts at or after"),
    end_date: datetime | None = Query(default=None, description="Starts at or before"),
    limit: int = Query(default=10, ge=1, le=200),
    skip: int = Query(default=0, ge=0),
    acting_user: ActingUser = Depends(get_acting_user),
    state_machine: MeetingStateMachine = Depends(get_state_machine),
) -> MeetingListResponse:
    """List meetings with optional filters, ordered by start time."""
    filters = MeetingFilter(
        meeting_type=_parse_enum(MeetingType, meeting_type, "会议类型"),
        status=_parse_enum(MeetingStatus, status, "状态值"),
        organizer_id=organizer,
        parent_id=parent,
        student_id=student,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
        skip=skip,
    )
    try:
        meetings, total = await state_machine.list_meetings(filters)
    except Exception as e:
        _raise_internal("获取会议列表失败", e)
    return MeetingListResponse(
        data=meetings,
        pagination=Pagination(total=total, limit=limit, skip=skip),
    )


@router.get("/upcoming/{user_id}", response_model=list[Meeting])
async def upcoming_meetings(
    user_id: str,
    role: str | None = Query(default=None, description="Role the user holds"),
    limit: int = Query(default=5, ge=1, le=50),
    acting_user: ActingUser = Depends(get_acting_user),
    state_machine: MeetingStateMachine = Depends(get_state_machine),
) -> list[Meeting]:
    """Future meetings still awaiting confirmation for a user."""
    if not user_id.strip() or not role:
        raise HTTPException(status_code=400, detail="用户ID和角色不能为空")
    parsed_role = _parse_enum(Role, role.lower(), "角色")
    try:
        return await state_machine.upcoming(user_id, parsed_role, limit=limit)
    except Exception as e:
        _raise_internal("获取即将到来的会议失败", e)


@router.get("/{meeting_id}", response_model=Meeting)
async def get_meeting(
    meeting_id: str,
    acting_user: ActingUser = Depends(get_acting_user),
    state_machine: MeetingStateMachine = Depends(get_state_machine),
) -> Meeting:
    """Get a meeting by id."""
    try:
        return await state_machine.get(meeting_id)
    except PortalError as e:
        _raise_http(e)
    except Exception as e:
        _raise_internal("获取会议失败", e)


@router.put("/{meeting_id}", response_model=Meeting)
async def reschedule_meeting(
    meeting_id: str,
    request: MeetingUpdateRequest,
    acting_user: ActingUser = Depends(get_acting_user),
    state_machine: MeetingStateMachine = Depends(get_state_machine),
) -> Meeting:
    """Change a meeting's time, venue or details.

    Raises:
        HTTPException: 400 invalid change or meeting already cancelled or
            completed, 403 not organizer or admin, 404 unknown meeting,
            409 time conflict or stale expected_version
    """
    try:
        return await state_machine.reschedule(
            meeting_id,
            request.to_command(),
            acting_user,
            expected_version=request.expected_version,
        )
    except PortalError as e:
        _raise_http(e)
    except Exception as e:
        _raise_internal("更新会议失败", e)


@router.put("/{meeting_id}/status", response_model=Meeting)
async def update_status(
    meeting_id: str,
    request: StatusUpdateRequest,
    acting_user: ActingUser = Depends(get_acting_user),
    state_machine: MeetingStateMachine = Depends(get_state_machine),
) -> Meeting:
    """Move a meeting to a new status.

    Raises:
        HTTPException: 400 invalid or illegal status, 403 not organizer or
            admin, 404 unknown meeting, 409 stale expected_version
    """
    try:
        return await state_machine.update_status(
            meeting_id,
            request.status,
            acting_user,
            notes=request.notes,
            expected_version=request.expected_version,
        )
    except PortalError as e:
        _raise_http(e)
    except Exception as e:
        _raise_internal("更新会议失败", e)


@router.post("/{meeting_id}/attend", response_model=Meeting)
async def confirm_attendance(
    meeting_id: str,
    acting_user: ActingUser = Depends(get_acting_user),
    state_machine: MeetingStateMachine = Depends(get_state_machine),
) -> Meeting:
    """Confirm attendance as the meeting's parent or student. Idempotent."""
    try:
        return await state_machine.confirm_attendance(meeting_id, acting_user)
    except PortalError as e:
        _raise_http(e)
    except Exception as e:
        _raise_internal("确认参会失败", e)


@router.put("/{meeting_id}/cancel", response_model=Meeting)
async def cancel_meeting(
    meeting_id: str,
    request: CancelRequest | None = None,
    acting_user: ActingUser = Depends(get_acting_user),
    state_machine: MeetingStateMachine = Depends(get_state_machine),
) -> Meeting:
    """Cancel a meeting, recording the reason."""
    reason = request.reason if request else None
    try:
        return await state_machine.cancel(meeting_id, acting_user, reason)
    except PortalError as e:
        _raise_http(e)
    except Exception as e:
        _raise_internal("取消会议失败", e)


@router.put("/{meeting_id}/feedback", response_model=Meeting)
async def add_feedback(
    meeting_id: str,
    request: FeedbackRequest,
    acting_user: ActingUser = Depends(get_acting_user),
    state_machine: MeetingStateMachine = Depends(get_state_machine),
) -> Meeting:
    """Attach post-meeting feedback."""
    try:
        return await state_machine.add_feedback(meeting_id, acting_user, request.feedback)
    except PortalError as e:
        _raise_http(e)
    except Exception as e:
        _raise_internal("添加会议反馈失败", e)
