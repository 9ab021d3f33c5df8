"""Topic names used on the TopicBus.

Some topics are global (``system-alert``); others are keyed by a subject
id and only exist as ``<prefix>-<subject id>``.
"""

from enum import Enum


class Topic(str, Enum):
    """Known topic families."""

    STUDENT_TRENDS_UPDATE = "student-trends-update"
    CLASS_UPDATE = "class-update"
    STUDENT_DATA_UPDATE = "student-data-update"
    SYSTEM_ALERT = "system-alert"
    USER_MEETINGS = "meetings"

    @property
    def is_keyed(self) -> bool:
        """Whether the topic needs a subject id appended."""
        return self in _KEYED

    def channel(self, subject_id: str | None = None) -> str:
        """Build the exact channel string for this topic.

        Raises:
            ValueError: If a keyed topic is given no subject id, or a
                global topic is given one.
        """
        if self.is_keyed:
            if not subject_id:
                msg = f"Topic {self.value} requires a subject id"
                raise ValueError(msg)
            return f"{self.value}-{subject_id}"
        if subject_id:
            msg = f"Topic {self.value} is not keyed by subject"
            raise ValueError(msg)
        return self.value


_KEYED = frozenset({Topic.CLASS_UPDATE, Topic.STUDENT_DATA_UPDATE, Topic.USER_MEETINGS})


def parse_channel(channel: str) -> tuple[Topic, str | None] | None:
    """Split a channel string back into its topic family and subject id.

    Returns None for channels that belong to no known family.
    """
    for topic in Topic:
        if topic.is_keyed:
            prefix = f"{topic.value}-"
            if channel.startswith(prefix) and len(channel) > len(prefix):
                return topic, channel[len(prefix) :]
        elif channel == topic.value:
            return topic, None
    return None


def channel_name(topic: "Topic | str") -> str:
    """Normalize a Topic member or raw string to the channel string."""
    if isinstance(topic, Topic):
        return topic.channel()
    return topic


def class_update(class_id: str) -> str:
    return Topic.CLASS_UPDATE.channel(class_id)


def student_data_update(child_id: str) -> str:
    return Topic.STUDENT_DATA_UPDATE.channel(child_id)


def user_meetings(user_id: str) -> str:
    return Topic.USER_MEETINGS.channel(user_id)
