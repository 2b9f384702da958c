"""
Transcoding Worker
Publisher-side lifecycle for transcoding jobs: owns the broker connection
"""
import time
import logging
import signal
from typing import Optional

from audiobook_shared.database import check_database, create_session_factory
from audiobook_shared.rabbitmq_client import RabbitMQClient, RabbitMQFactory
from audiobook_shared.utils import setup_logging
from transcoding_service.config import Config
from transcoding_service.publisher import JobPublisher

logger = logging.getLogger(__name__)


class TranscodingWorker:
    """Starts and stops the shared connection used to publish transcoding jobs"""

    def __init__(self, client: RabbitMQClient, session_factory, config: Optional[Config] = None):
        self.client = client
        self.session_factory = session_factory
        self.publisher = JobPublisher(client, config)
        self.is_running = False

    def start(self):
        """Start the transcoding worker"""
        if self.is_running:
            logger.info("Transcoding worker is already running")
            return

        self.client.connect()
        self.is_running = True
        logger.info("Transcoding worker started successfully (publisher only)")

    def stop(self):
        """Stop the worker and close the shared connection"""
        if not self.is_running:
            logger.info("Transcoding worker is not running")
            return

        self.client.close()
        self.is_running = False
        logger.info("Transcoding worker stopped")

    def get_worker_stats(self):
        return {
            'is_running': self.is_running,
            'recent_jobs': [],
        }

    def test_worker(self) -> bool:
        """Check broker and database reachability"""
        try:
            is_connected = self.client.is_connected()
            check_database(self.session_factory)

            logger.info(
                f"Worker test results: rabbitmq_connected={is_connected}, database_connected=True"
            )
            return is_connected
        except Exception as e:
            logger.error(f"Worker test failed: {e}")
            return False


class TranscodingWorkerFactory:
    """Process-wide access to one TranscodingWorker"""

    _worker: Optional[TranscodingWorker] = None

    @classmethod
    def get_worker(cls, client: RabbitMQClient, session_factory, **kwargs) -> TranscodingWorker:
        if cls._worker is None:
            cls._worker = TranscodingWorker(client, session_factory, **kwargs)
        return cls._worker

    @classmethod
    def start_worker(cls, client: RabbitMQClient, session_factory, **kwargs) -> TranscodingWorker:
        worker = cls.get_worker(client, session_factory, **kwargs)
        worker.start()
        return worker

    @classmethod
    def stop_worker(cls) -> None:
        if cls._worker is not None:
            cls._worker.stop()
            cls._worker = None


def main():
    """Main entry point"""
    config = Config()
    setup_logging(config)

    client = RabbitMQFactory.get_client(config)
    session_factory = create_session_factory(config.DATABASE_URL)
    worker = TranscodingWorkerFactory.get_worker(client, session_factory, config=config)
    running = True

    def signal_handler(signum, frame):
        nonlocal running
        logger.info(f"Received signal {signum}, shutting down gracefully...")
        running = False

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    logger.info(
        f"Default bitrates: {config.TRANSCODING_BITRATES}, default priority: {config.DEFAULT_PRIORITY}"
    )
    try:
        worker.start()
    except Exception as e:
        # A retry is already scheduled by the client
        logger.error(f"Failed to start transcoding worker: {e}")

    try:
        while running:
            # Heartbeats and due reconnect attempts run here
            if not client.process_data_events(time_limit=1):
                time.sleep(1)
    finally:
        TranscodingWorkerFactory.stop_worker()
        RabbitMQFactory.shutdown()


if __name__ == '__main__':
    main()
