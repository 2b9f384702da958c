"""Transcoding service package: job publisher and publisher-side worker."""

from .publisher import JobPublisher, queue_chapter_transcoding
from .worker import TranscodingWorker, TranscodingWorkerFactory

__all__ = [
    'JobPublisher',
    'queue_chapter_transcoding',
    'TranscodingWorker',
    'TranscodingWorkerFactory',
]
