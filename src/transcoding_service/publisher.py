"""
Transcoding job publisher
Routes chapter transcoding jobs onto the transcoding exchange by priority
"""
import json
import time
import logging
from datetime import datetime, timezone
from typing import Any, List, Optional

import pika
from prometheus_client import Counter

from audiobook_shared.exceptions import ChannelUnavailableError
from audiobook_shared.messages import ChapterSnapshot, TranscodingJobData
from audiobook_shared.rabbitmq_client import CONNECTION_LOSS_ERRORS, RabbitMQClient
from audiobook_shared.rabbitmq_config import PRIORITY_LEVELS, TRANSCODE_EXCHANGE
from transcoding_service.config import Config

logger = logging.getLogger(__name__)

JOBS_PUBLISHED = Counter('transcoding_jobs_published_total', 'Transcoding jobs published', ['priority'])
JOBS_PUBLISH_FAILED = Counter(
    'transcoding_jobs_publish_failed_total', 'Transcoding jobs not queued', ['priority', 'reason']
)


def utc_timestamp(now: Optional[datetime] = None) -> str:
    """ISO-8601 UTC timestamp with millisecond precision, e.g. 2024-01-15T10:30:00.000Z"""
    now = now or datetime.now(timezone.utc)
    return now.isoformat(timespec='milliseconds').replace('+00:00', 'Z')


class JobPublisher:
    """Publishes transcoding jobs through the shared RabbitMQ channel."""

    def __init__(self, client: RabbitMQClient, config: Optional[Config] = None):
        self.client = client
        self.config = config or Config()

    def build_message(self, job_data: TranscodingJobData, priority: str) -> dict:
        message = job_data.to_dict()
        message['priority'] = priority
        message['timestamp'] = utc_timestamp()
        message['retryCount'] = job_data.retry_count or 0
        return message

    def publish(self, job_data: TranscodingJobData, priority: str = 'normal') -> bool:
        """Publish a transcoding job.

        Raises ChannelUnavailableError when no channel is open. Every other
        problem is logged and reported as False: the job was not queued.
        """
        channel = self.client.require_channel()

        if priority not in PRIORITY_LEVELS:
            logger.error(f"Unknown transcoding priority: {priority}")
            JOBS_PUBLISH_FAILED.labels(priority=str(priority), reason='invalid_priority').inc()
            return False

        if self.client.is_blocked:
            logger.warning(f"Failed to publish transcoding job for chapter {job_data.chapter.id} - connection blocked")
            JOBS_PUBLISH_FAILED.labels(priority=priority, reason='blocked').inc()
            return False

        try:
            body = json.dumps(self.build_message(job_data, priority))
            channel.basic_publish(
                exchange=TRANSCODE_EXCHANGE,
                routing_key=priority,
                body=body,
                properties=pika.BasicProperties(
                    delivery_mode=2,  # persistent
                    content_type='application/json',
                    priority=PRIORITY_LEVELS[priority],
                    message_id=f"{job_data.chapter.id}-{int(time.time() * 1000)}"
                )
            )
        except CONNECTION_LOSS_ERRORS as e:
            logger.error(f"Error publishing transcoding job: {e}")
            JOBS_PUBLISH_FAILED.labels(priority=priority, reason='connection').inc()
            self.client.handle_connection_lost(e)
            return False
        except Exception as e:
            logger.error(f"Error publishing transcoding job: {e}")
            JOBS_PUBLISH_FAILED.labels(priority=priority, reason='error').inc()
            return False

        logger.info(f"Transcoding job published for chapter {job_data.chapter.id} with priority {priority}")
        JOBS_PUBLISHED.labels(priority=priority).inc()
        return True


def queue_chapter_transcoding(
    publisher: JobPublisher,
    chapter: Any,
    bitrates: Optional[List[int]] = None,
    priority: Optional[str] = None,
    user_id: Optional[str] = None
) -> bool:
    """Queue transcoding for a freshly stored chapter.

    Bitrates and priority default to TRANSCODING_BITRATES and
    DEFAULT_PRIORITY of the publisher's config. Fire-and-forget: never
    raises, so the chapter write that preceded it stands even when no job
    could be queued.
    """
    if bitrates is None:
        bitrates = publisher.config.TRANSCODING_BITRATES
    priority = priority or publisher.config.DEFAULT_PRIORITY
    try:
        job_data = TranscodingJobData(
            chapter=ChapterSnapshot.from_record(chapter),
            bitrates=list(bitrates),
            priority=priority,
            user_id=user_id
        )
        published = publisher.publish(job_data, priority)
    except ChannelUnavailableError as e:
        logger.error(f"Cannot queue transcoding job: {e}")
        return False
    except Exception as e:
        logger.error(f"Error queueing transcoding job: {e}")
        return False

    if published:
        logger.info(f"Transcoding job published for new chapter {job_data.chapter.id}")
    else:
        logger.warning(f"Failed to publish transcoding job for chapter {job_data.chapter.id}")
    return published
