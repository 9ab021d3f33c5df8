"""Meeting lifecycle: scheduling, status transitions and attendance.

Every command is checked in the same order: the meeting must exist, the
acting user must be allowed to touch it, and the requested change must be
legal from the current status. Successful commands persist first and then
publish an event on the meeting topics of the organizer, the parent and
the student.
"""

import asyncio
from collections import Counter
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

import structlog
from pydantic import ValidationError as PydanticValidationError

from portal.config import Settings, get_settings
from portal.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    TransitionError,
    ValidationError,
)
from portal.events.bus import TopicBus
from portal.events.topics import user_meetings
from portal.events.types import (
    MeetingAttendanceConfirmed,
    MeetingCreated,
    MeetingEvent,
    MeetingRescheduled,
    MeetingStatusChanged,
)
from portal.meetings.schemas import MeetingCreate, MeetingReschedule
from portal.models.base import new_id
from portal.models.meeting import (
    Meeting,
    MeetingStatus,
    MeetingType,
    OfflineVenue,
    OnlineVenue,
)
from portal.models.participant import ActingUser, Role, UserRef
from portal.repositories.meeting_repo import MeetingFilter, MeetingRepository

logger = structlog.get_logger()

TRANSITIONS: dict[MeetingStatus, frozenset[MeetingStatus]] = {
    MeetingStatus.SCHEDULED: frozenset(
        {MeetingStatus.CONFIRMED, MeetingStatus.CANCELLED, MeetingStatus.COMPLETED}
    ),
    MeetingStatus.CONFIRMED: frozenset({MeetingStatus.CANCELLED, MeetingStatus.COMPLETED}),
    MeetingStatus.CANCELLED: frozenset(),
    MeetingStatus.COMPLETED: frozenset(),
}

REQUIRED_FIELDS = ("title", "organizer", "parent", "student", "start_time", "end_time")
MISSING_FIELDS_MESSAGE = "标题、教师、家长、学生、开始时间和结束时间不能为空"

DEFAULT_CANCEL_REASON = "会议已取消"


def can_transition(current: MeetingStatus, target: MeetingStatus) -> bool:
    """Check the transition table."""
    return target in TRANSITIONS[current]


def parse_status(value: MeetingStatus | str) -> MeetingStatus:
    """Accept enum members, values or display labels."""
    try:
        return MeetingStatus(value)
    except ValueError:
        raise ValidationError("无效的状态值", fields=["status"]) from None


def _terminal_message(status: MeetingStatus) -> str:
    if status == MeetingStatus.CANCELLED:
        return "已取消的会议不能更新"
    return "已结束的会议不能更新"


class MeetingStateMachine:
    """Validates and applies meeting commands.

    Commands on the same meeting id are serialized with a per-meeting
    lock. Across processes there is no coordination: the last write to
    reach the store wins unless the caller passes ``expected_version``.
    """

    def __init__(
        self,
        repo: MeetingRepository,
        bus: TopicBus,
        settings: Settings | None = None,
    ):
        """Initialize with store and bus.

        Args:
            repo: Meeting record store
            bus: Topic bus for meeting events
            settings: Settings override (defaults to cached settings)
        """
        self._repo = repo
        self._bus = bus
        self._settings = settings or get_settings()
        # Per-meeting locks live only while a command holds or awaits them
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: Counter[str] = Counter()

    @asynccontextmanager
    async def _meeting_lock(self, meeting_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(meeting_id, asyncio.Lock())
        self._lock_users[meeting_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[meeting_id] -= 1
            if self._lock_users[meeting_id] <= 0:
                del self._lock_users[meeting_id]
                del self._locks[meeting_id]

    # Queries

    async def get(self, meeting_id: str) -> Meeting:
        """Fetch a meeting or raise NotFoundError."""
        meeting = await self._repo.get(meeting_id)
        if meeting is None:
            raise NotFoundError("会议不存在")
        return meeting

    async def list_meetings(self, filters: MeetingFilter) -> tuple[list[Meeting], int]:
        return await self._repo.list_meetings(filters)

    async def upcoming(
        self,
        user_id: str,
        role: Role,
        limit: int = 5,
        now: datetime | None = None,
    ) -> list[Meeting]:
        """Future meetings awaiting confirmation where the user holds ``role``."""
        return await self._repo.upcoming(user_id, role, now or datetime.now(UTC), limit)

    # Commands

    async def create(self, data: MeetingCreate, acting_user: ActingUser) -> Meeting:
        """Schedule a new meeting.

        Raises:
            AuthorizationError: Acting user is not a teacher or admin
            ValidationError: Required fields missing or inconsistent
            ConflictError: Organizer or parent already booked in that slot
        """
        if not acting_user.role.can_organize:
            raise AuthorizationError("只有教师或管理员可以创建会议")

        organizer = self._organizer_ref(data, acting_user)
        missing = [
            field
            for field in REQUIRED_FIELDS
            if (organizer if field == "organizer" else getattr(data, field)) in (None, "")
        ]
        if missing:
            msg = f"{MISSING_FIELDS_MESSAGE} (missing: {', '.join(missing)})"
            raise ValidationError(msg, fields=missing)

        meeting_id = new_id()
        try:
            meeting = Meeting(
                id=meeting_id,
                title=data.title,
                description=data.description,
                organizer=organizer,
                parent=UserRef(id=data.parent.id, name=data.parent.name, role=Role.PARENT),
                student=UserRef(
                    id=data.student.id, name=data.student.name, role=Role.STUDENT
                ),
                start_time=data.start_time,
                end_time=data.end_time,
                venue=self._build_venue(data, meeting_id),
                status=MeetingStatus.SCHEDULED,
                notes=data.notes,
            )
        except PydanticValidationError as e:
            raise ValidationError(_first_error(e)) from None

        conflict = await self._repo.find_conflict(
            meeting.organizer.id, meeting.parent.id, meeting.start_time, meeting.end_time
        )
        if conflict is not None:
            raise ConflictError("会议时间冲突", conflict_with=conflict.id)

        meeting = await self._repo.insert(meeting)
        logger.info(
            "meeting created",
            meeting_id=meeting.id,
            organizer_id=meeting.organizer.id,
            parent_id=meeting.parent.id,
            meeting_type=meeting.meeting_type.value,
        )
        await self._publish(
            meeting,
            MeetingCreated.from_meeting(meeting, meeting=meeting.model_dump(mode="json")),
        )
        return meeting

    async def update_status(
        self,
        meeting_id: str,
        new_status: MeetingStatus | str,
        acting_user: ActingUser,
        *,
        notes: str | None = None,
        expected_version: int | None = None,
    ) -> Meeting:
        """Move a meeting to a new status on behalf of its organizer or an admin.

        Raises:
            NotFoundError: Meeting does not exist
            AuthorizationError: Acting user is neither organizer nor admin
            ValidationError: Unknown status value
            TransitionError: Illegal transition (including out of terminal states)
            ConcurrencyError: expected_version given and stale
        """
        async with self._meeting_lock(meeting_id):
            meeting = await self.get(meeting_id)
            if not (meeting.is_organizer(acting_user.id) or acting_user.is_admin):
                raise AuthorizationError("没有权限更新此会议")
            target = parse_status(new_status)

            old_status = meeting.status
            if old_status.is_terminal:
                raise TransitionError(
                    old_status.value, target.value, _terminal_message(old_status)
                )
            if not can_transition(old_status, target):
                raise TransitionError(old_status.value, target.value)

            changes: dict = {"status": target}
            if notes is not None:
                changes["notes"] = notes
            updated = meeting.revise(**changes)
            updated = await self._repo.save(updated, expected_version=expected_version)

        logger.info(
            "meeting status changed",
            meeting_id=meeting_id,
            old_status=old_status.value,
            new_status=target.value,
            changed_by=acting_user.id,
        )
        await self._publish(
            updated,
            MeetingStatusChanged.from_meeting(
                updated,
                old_status=old_status,
                new_status=target,
                changed_by=acting_user.id,
            ),
        )
        return updated

    async def confirm_attendance(
        self,
        meeting_id: str,
        acting_user: ActingUser,
    ) -> Meeting:
        """Confirm attendance as the designated participant.

        Confirming an already-confirmed meeting is a no-op success.

        Raises:
            NotFoundError: Meeting does not exist
            AuthorizationError: Acting user is not a designated participant
            TransitionError: Meeting is cancelled or completed
        """
        async with self._meeting_lock(meeting_id):
            meeting = await self.get(meeting_id)
            if not meeting.is_participant(acting_user.id):
                raise AuthorizationError("不是会议参与者")

            if meeting.status == MeetingStatus.CONFIRMED:
                logger.debug(
                    "attendance already confirmed",
                    meeting_id=meeting_id,
                    user_id=acting_user.id,
                )
                return meeting
            if meeting.status != MeetingStatus.SCHEDULED:
                raise TransitionError(
                    meeting.status.value,
                    MeetingStatus.CONFIRMED.value,
                    _terminal_message(meeting.status),
                )

            updated = meeting.revise(status=MeetingStatus.CONFIRMED)
            updated = await self._repo.save(updated)

        logger.info(
            "meeting attendance confirmed",
            meeting_id=meeting_id,
            confirmed_by=acting_user.id,
        )
        await self._publish(
            updated,
            MeetingAttendanceConfirmed.from_meeting(updated, confirmed_by=acting_user.id),
        )
        return updated

    async def cancel(
        self,
        meeting_id: str,
        acting_user: ActingUser,
        reason: str | None = None,
    ) -> Meeting:
        """Cancel a meeting, recording the reason in its notes."""
        return await self.update_status(
            meeting_id,
            MeetingStatus.CANCELLED,
            acting_user,
            notes=reason or DEFAULT_CANCEL_REASON,
        )

    async def add_feedback(
        self,
        meeting_id: str,
        acting_user: ActingUser,
        feedback: str,
    ) -> Meeting:
        """Attach post-meeting feedback. Does not change status."""
        if not feedback or not feedback.strip():
            raise ValidationError("反馈内容不能为空", fields=["feedback"])

        async with self._meeting_lock(meeting_id):
            meeting = await self.get(meeting_id)
            if not (meeting.involves(acting_user.id) or acting_user.is_admin):
                raise AuthorizationError("没有权限为此会议添加反馈")

            updated = meeting.revise(feedback=feedback.strip())
            updated = await self._repo.save(updated)

        logger.info("meeting feedback added", meeting_id=meeting_id, user_id=acting_user.id)
        return updated

    async def reschedule(
        self,
        meeting_id: str,
        data: MeetingReschedule,
        acting_user: ActingUser,
        *,
        expected_version: int | None = None,
    ) -> Meeting:
        """Change a meeting's time, venue or details before it takes place.

        A new time slot is checked for conflicts against the organizer's and
        parent's other meetings. Changing the meeting type re-derives the
        venue: offline needs a location, online keeps or generates a link.
        A request that changes nothing is a no-op (no write, no event).

        Raises:
            NotFoundError: Meeting does not exist
            AuthorizationError: Acting user is neither organizer nor admin
            TransitionError: Meeting is cancelled or completed
            ValidationError: Resulting meeting is invalid
            ConflictError: New slot overlaps another meeting
            ConcurrencyError: expected_version given and stale
        """
        async with self._meeting_lock(meeting_id):
            meeting = await self.get(meeting_id)
            if not (meeting.is_organizer(acting_user.id) or acting_user.is_admin):
                raise AuthorizationError("没有权限更新此会议")
            if meeting.is_terminal:
                raise TransitionError(
                    meeting.status.value,
                    meeting.status.value,
                    _terminal_message(meeting.status),
                )

            changes = self._reschedule_changes(meeting, data)
            if not changes:
                return meeting
            try:
                updated = Meeting.model_validate(
                    {
                        **meeting.model_dump(),
                        **changes,
                        "version": meeting.version,
                        "updated_at": datetime.now(UTC),
                    }
                )
            except PydanticValidationError as e:
                raise ValidationError(_first_error(e)) from None

            if "start_time" in changes or "end_time" in changes:
                conflict = await self._repo.find_conflict(
                    updated.organizer.id,
                    updated.parent.id,
                    updated.start_time,
                    updated.end_time,
                    exclude_id=meeting.id,
                )
                if conflict is not None:
                    raise ConflictError("会议时间冲突", conflict_with=conflict.id)

            updated = await self._repo.save(updated, expected_version=expected_version)

        logger.info(
            "meeting rescheduled",
            meeting_id=meeting_id,
            changed_fields=sorted(changes),
            changed_by=acting_user.id,
        )
        await self._publish(
            updated,
            MeetingRescheduled.from_meeting(
                updated,
                meeting=updated.model_dump(mode="json"),
                changed_fields=sorted(changes),
                changed_by=acting_user.id,
            ),
        )
        return updated

    # Helpers

    def _organizer_ref(self, data: MeetingCreate, acting_user: ActingUser) -> UserRef:
        if data.organizer is None or data.organizer.id == acting_user.id:
            return UserRef(
                id=acting_user.id,
                name=(data.organizer.name if data.organizer else "") or acting_user.name,
                role=acting_user.role,
            )
        # Someone scheduling on a teacher's behalf
        return UserRef(id=data.organizer.id, name=data.organizer.name, role=Role.TEACHER)

    def _build_venue(self, data: MeetingCreate, meeting_id: str) -> OfflineVenue | OnlineVenue:
        return self._venue(data.meeting_type, data.location, data.link, meeting_id)

    def _venue(
        self,
        meeting_type: str,
        location: str | None,
        link: str | None,
        meeting_id: str,
    ) -> OfflineVenue | OnlineVenue:
        try:
            kind = MeetingType(meeting_type)
        except ValueError:
            raise ValidationError(
                "meetingType 必须是 offline 或 online", fields=["meeting_type"]
            ) from None

        if kind == MeetingType.OFFLINE:
            if not location:
                raise ValidationError("线下会议必须提供地点", fields=["location"])
            return OfflineVenue(location=location)

        return OnlineVenue(link=link or f"{self._settings.meeting_link_base}/{meeting_id}")

    def _reschedule_changes(self, meeting: Meeting, data: MeetingReschedule) -> dict:
        """Fields of ``meeting`` the request actually changes."""
        requested = {
            name: getattr(data, name)
            for name in ("title", "description", "start_time", "end_time", "notes")
            if getattr(data, name) is not None
        }

        venue = meeting.venue
        if data.meeting_type is not None or data.location is not None or data.link is not None:
            meeting_type = data.meeting_type or meeting.meeting_type.value
            current_location = getattr(venue, "location", None)
            current_link = getattr(venue, "link", None)
            venue = self._venue(
                meeting_type,
                data.location if data.location is not None else current_location,
                data.link if data.link is not None else current_link,
                meeting.id,
            )
            requested["venue"] = venue

        return {
            name: value
            for name, value in requested.items()
            if getattr(meeting, name) != value
        }

    async def _publish(self, meeting: Meeting, event: MeetingEvent) -> None:
        payload = event.to_payload()
        recipients = [meeting.organizer.id, meeting.parent.id]
        if meeting.student is not None:
            recipients.append(meeting.student.id)
        for user_id in dict.fromkeys(recipients):
            await self._bus.publish(user_meetings(user_id), payload)


def _first_error(error: PydanticValidationError) -> str:
    first = error.errors()[0]
    message = str(first.get("msg", "invalid input"))
    return message.removeprefix("Value error, ")
