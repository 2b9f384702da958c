"""Message envelopes exchanged over the broker."""

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from .exceptions import MessageValidationError

PRIORITIES = ('low', 'normal', 'high')
RESULT_STATUSES = ('completed', 'failed')


def _isoformat(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return value


@dataclass
class ChapterSnapshot:
    """Chapter row as it was when the transcoding job was created."""
    id: str
    audiobook_id: str
    title: str
    chapter_number: int
    duration: int
    file_path: str
    file_size: int
    start_position: int
    end_position: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    description: Optional[str] = None

    @classmethod
    def from_record(cls, record: Any) -> 'ChapterSnapshot':
        """Build from an ORM row, plain object or mapping with snake_case fields."""
        if isinstance(record, dict):
            get = record.get
        else:
            get = lambda name, default=None: getattr(record, name, default)  # noqa: E731

        return cls(
            id=str(get('id')),
            audiobook_id=str(get('audiobook_id')),
            title=get('title'),
            chapter_number=get('chapter_number'),
            duration=get('duration'),
            file_path=get('file_path'),
            file_size=int(get('file_size') or 0),
            start_position=get('start_position'),
            end_position=get('end_position'),
            created_at=get('created_at'),
            updated_at=get('updated_at'),
            description=get('description'),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'id': self.id,
            'audiobookId': self.audiobook_id,
            'title': self.title,
            'chapterNumber': self.chapter_number,
            'duration': self.duration,
            'filePath': self.file_path,
            'fileSize': self.file_size,
            'startPosition': self.start_position,
            'endPosition': self.end_position,
            'createdAt': _isoformat(self.created_at),
            'updatedAt': _isoformat(self.updated_at),
        }
        if self.description:
            data['description'] = self.description
        return data


@dataclass
class TranscodingJobData:
    chapter: ChapterSnapshot
    bitrates: List[int]
    priority: str = 'normal'
    user_id: Optional[str] = None
    retry_count: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'chapter': self.chapter.to_dict(),
            'bitrates': list(self.bitrates),
            'priority': self.priority,
        }
        if self.user_id is not None:
            data['userId'] = self.user_id
        if self.retry_count is not None:
            data['retryCount'] = self.retry_count
        return data


@dataclass
class TranscodingJobResult:
    """Result a transcoder is expected to report for one bitrate."""
    chapter_id: str
    bitrate: int
    status: str
    playlist_url: Optional[str] = None
    segments_path: Optional[str] = None
    error_message: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TranscodingJobResult':
        if not isinstance(data, dict):
            raise MessageValidationError("Job result must be a JSON object")
        status = data.get('status')
        if status not in RESULT_STATUSES:
            raise MessageValidationError(f"Invalid job result status: {status!r}")
        try:
            return cls(
                chapter_id=str(data['chapterId']),
                bitrate=int(data['bitrate']),
                status=status,
                playlist_url=data.get('playlistUrl'),
                segments_path=data.get('segmentsPath'),
                error_message=data.get('errorMessage'),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise MessageValidationError(f"Invalid job result: {e}") from e


@dataclass
class UserCreationMessage:
    user_id: str
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any) -> 'UserCreationMessage':
        if not isinstance(data, dict):
            raise MessageValidationError("User creation message must be a JSON object")
        user_id = data.get('userId')
        if not isinstance(user_id, str) or not user_id:
            raise MessageValidationError("Invalid message: userId is required and must be a string")
        extra = {k: v for k, v in data.items() if k != 'userId'}
        return cls(user_id=user_id, extra=extra)


def decode_json(body: Union[bytes, str]) -> Any:
    """Decode a message body, raising MessageValidationError on bad input."""
    try:
        if isinstance(body, bytes):
            body = body.decode('utf-8')
        return json.loads(body)
    except (UnicodeDecodeError, ValueError) as e:
        raise MessageValidationError(f"Malformed message body: {e}") from e


@dataclass
class QueueStats:
    message_count: int = 0
    consumer_count: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            'message_count': self.message_count,
            'consumer_count': self.consumer_count,
        }
