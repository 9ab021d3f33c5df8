"""Meeting record store.

Meetings are kept as JSON documents, with the columns needed for
filtering, conflict checks and versioning pulled out alongside.
Uses SQLite/libSQL (via TursoClient) for persistence.
"""

from datetime import UTC, datetime

from pydantic import BaseModel, Field

from portal.db.turso import TursoClient
from portal.errors import ConcurrencyError, NotFoundError
from portal.models.base import assume_utc
from portal.models.meeting import Meeting, MeetingStatus, MeetingType
from portal.models.participant import Role

_TIME_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

# Role slot -> indexed column
_ROLE_COLUMNS = {
    Role.TEACHER: "organizer_id",
    Role.ADMIN: "organizer_id",
    Role.PARENT: "parent_id",
    Role.STUDENT: "student_id",
}


def to_db_time(value: datetime) -> str:
    """Fixed-width UTC timestamp so text comparison orders correctly."""
    return assume_utc(value).astimezone(UTC).strftime(_TIME_FORMAT)


class MeetingFilter(BaseModel):
    """Filter options for listing meetings."""

    meeting_type: MeetingType | None = None
    status: MeetingStatus | None = None
    organizer_id: str | None = None
    parent_id: str | None = None
    student_id: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    limit: int = Field(default=10, ge=1, le=200)
    skip: int = Field(default=0, ge=0)


class MeetingRepository:
    """Document-style CRUD over the ``meetings`` table."""

    def __init__(self, db_client: TursoClient):
        """Initialize repository with database client.

        Args:
            db_client: TursoClient instance for database operations
        """
        self._db = db_client

    async def initialize(self) -> None:
        """Create meetings table if not exists."""
        await self._db.execute_batch(
            [
                """
            CREATE TABLE IF NOT EXISTS meetings (
                id TEXT PRIMARY KEY,
                organizer_id TEXT NOT NULL,
                parent_id TEXT NOT NULL,
                student_id TEXT,
                meeting_type TEXT NOT NULL,
                status TEXT NOT NULL,
                start_time TEXT NOT NULL,
                end_time TEXT NOT NULL,
                version INTEGER NOT NULL DEFAULT 1,
                document TEXT NOT NULL,
                created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
            )
            """,
                """
            CREATE INDEX IF NOT EXISTS idx_meetings_organizer
            ON meetings(organizer_id, start_time)
            """,
                """
            CREATE INDEX IF NOT EXISTS idx_meetings_parent
            ON meetings(parent_id, start_time)
            """,
            ]
        )

    async def insert(self, meeting: Meeting) -> Meeting:
        """Persist a new meeting at version 1."""
        stored = meeting.model_copy(update={"version": 1})
        await self._db.execute(
            """
            INSERT INTO meetings
                (id, organizer_id, parent_id, student_id, meeting_type,
                 status, start_time, end_time, version, document)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                stored.id,
                stored.organizer.id,
                stored.parent.id,
                stored.student.id if stored.student else None,
                stored.meeting_type.value,
                stored.status.value,
                to_db_time(stored.start_time),
                to_db_time(stored.end_time),
                stored.version,
                stored.model_dump_json(),
            ],
        )
        return stored

    async def get(self, meeting_id: str) -> Meeting | None:
        """Fetch one meeting, or None if it doesn't exist."""
        row = await self._db.fetch_one(
            "SELECT document, version FROM meetings WHERE id = ?",
            [meeting_id],
        )
        return self._from_row(row) if row is not None else None

    async def save(
        self,
        meeting: Meeting,
        expected_version: int | None = None,
    ) -> Meeting:
        """Write an existing meeting back.

        Without ``expected_version`` the last write wins. With it, the
        write only succeeds if the stored version still matches.

        Raises:
            NotFoundError: If the meeting was never stored
            ConcurrencyError: If expected_version doesn't match
        """
        sql = """
            UPDATE meetings
            SET status = ?, start_time = ?, end_time = ?, meeting_type = ?,
                document = ?, version = version + 1
            WHERE id = ?
        """
        params: list = [
            meeting.status.value,
            to_db_time(meeting.start_time),
            to_db_time(meeting.end_time),
            meeting.meeting_type.value,
            meeting.model_dump_json(exclude={"version"}),
            meeting.id,
        ]
        if expected_version is not None:
            sql += " AND version = ?"
            params.append(expected_version)
        result = await self._db.execute(sql, params)
        if result.rows_affected == 0:
            current = await self.get(meeting.id)
            if current is None:
                raise NotFoundError("会议不存在")
            msg = f"Expected version {expected_version}, got {current.version}"
            raise ConcurrencyError(msg)
        version = await self._db.fetch_value(
            "SELECT version FROM meetings WHERE id = ?",
            [meeting.id],
        )
        return meeting.model_copy(update={"version": version})

    async def list_meetings(self, filters: MeetingFilter) -> tuple[list[Meeting], int]:
        """List meetings ordered by start time.

        Returns:
            Tuple of (page of meetings, total matching count)
        """
        clauses: list[str] = []
        params: list = []
        if filters.meeting_type:
            clauses.append("meeting_type = ?")
            params.append(filters.meeting_type.value)
        if filters.status:
            clauses.append("status = ?")
            params.append(filters.status.value)
        for column, value in (
            ("organizer_id", filters.organizer_id),
            ("parent_id", filters.parent_id),
            ("student_id", filters.student_id),
        ):
            if value:
                clauses.append(f"{column} = ?")
                params.append(value)
        if filters.start_date:
            clauses.append("start_time >= ?")
            params.append(to_db_time(filters.start_date))
        if filters.end_date:
            clauses.append("start_time <= ?")
            params.append(to_db_time(filters.end_date))

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        total = await self._db.fetch_value(f"SELECT COUNT(*) FROM meetings {where}", params)
        rows = await self._db.fetch_all(
            f"""
            SELECT document, version FROM meetings {where}
            ORDER BY start_time ASC
            LIMIT ? OFFSET ?
            """,
            [*params, filters.limit, filters.skip],
        )
        return [self._from_row(row) for row in rows], total

    async def find_conflict(
        self,
        organizer_id: str,
        parent_id: str,
        start_time: datetime,
        end_time: datetime,
        exclude_id: str | None = None,
    ) -> Meeting | None:
        """Find a non-cancelled meeting overlapping the slot for either party."""
        sql = """
            SELECT document, version FROM meetings
            WHERE (organizer_id = ? OR parent_id = ?)
              AND start_time < ?
              AND end_time > ?
              AND status != ?
        """
        params: list = [
            organizer_id,
            parent_id,
            to_db_time(end_time),
            to_db_time(start_time),
            MeetingStatus.CANCELLED.value,
        ]
        if exclude_id:
            sql += " AND id != ?"
            params.append(exclude_id)
        sql += " ORDER BY start_time ASC LIMIT 1"

        row = await self._db.fetch_one(sql, params)
        return self._from_row(row) if row is not None else None

    async def upcoming(
        self,
        user_id: str,
        role: Role,
        now: datetime,
        limit: int = 5,
    ) -> list[Meeting]:
        """Future meetings still awaiting confirmation for a user."""
        column = _ROLE_COLUMNS[role]
        rows = await self._db.fetch_all(
            f"""
            SELECT document, version FROM meetings
            WHERE {column} = ? AND start_time > ? AND status = ?
            ORDER BY start_time ASC
            LIMIT ?
            """,
            [user_id, to_db_time(now), MeetingStatus.SCHEDULED.value, limit],
        )
        return [self._from_row(row) for row in rows]

    def _from_row(self, row) -> Meeting:
        meeting = Meeting.model_validate_json(row[0])
        return meeting.model_copy(update={"version": row[1]})
