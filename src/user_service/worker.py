"""
User Consumer Worker
Consumes user creation events and provisions a user profile for each
"""
import time
import logging
import signal
from typing import Optional

from audiobook_shared.database import check_database, create_session_factory
from audiobook_shared.messages import UserCreationMessage
from audiobook_shared.rabbitmq_client import RabbitMQClient, RabbitMQFactory
from audiobook_shared.utils import setup_logging
from user_service.config import Config
from user_service.consumer import MessageConsumer
from user_service.models import Base
from user_service.profile_service import UserProfileService

logger = logging.getLogger(__name__)


class UserConsumerWorker:
    """Subscribes the user-provisioning workflow to user creation events"""

    def __init__(
        self,
        client: RabbitMQClient,
        session_factory,
        profile_service: Optional[UserProfileService] = None,
        config: Optional[Config] = None
    ):
        self.client = client
        self.session_factory = session_factory
        self.config = config or Config()
        self.profile_service = profile_service or UserProfileService(session_factory, config=self.config)
        self.consumer = MessageConsumer(client)
        self.is_running = False
        self.stop_requested = False

    def start(self):
        """Connect and start consuming user creation messages"""
        if self.is_running:
            logger.info("User consumer worker is already running")
            return

        try:
            self.client.connect()
            self.consumer.consume(self.handle_user_creation)
        except Exception as e:
            logger.error(f"Failed to start user consumer worker: {e}")
            raise

        self.is_running = True
        logger.info("User consumer worker started successfully")

    def stop(self):
        """Cancel the subscription; the shared connection stays open"""
        if not self.is_running:
            logger.info("User consumer worker is not running")
            return

        self.consumer.stop_consuming()
        self.is_running = False
        logger.info("User consumer worker stopped")

    def handle_user_creation(self, message: UserCreationMessage) -> None:
        """Create the profile for a new user; raises so the consumer logs the failure"""
        logger.info(f"Processing user creation for userId: {message.user_id}")

        result = self.profile_service.create_user_profile(message.user_id)
        if not result.success:
            raise RuntimeError(f"Failed to create user profile for userId: {message.user_id}, error: {result.error}")

        logger.info(
            f"Successfully created user profile for userId: {message.user_id}, "
            f"username: {result.user_profile['username']}"
        )

    def request_stop(self):
        """Ask ``run`` to return; safe to call from a signal handler"""
        self.stop_requested = True

    def run(self, poll_interval: Optional[float] = None):
        """Pump deliveries until stopped, resubscribing after a reconnect.

        Reconnect attempts fire from ``process_data_events``, so they run
        on this thread like every other use of the connection.
        """
        poll_interval = poll_interval if poll_interval is not None else self.config.POLL_INTERVAL

        while self.is_running and not self.stop_requested:
            if self.client.is_connected() and not self.consumer.is_subscribed:
                try:
                    self.consumer.consume(self.handle_user_creation)
                except Exception as e:
                    logger.error(f"Error resubscribing to user creation messages: {e}")

            if not self.client.process_data_events(time_limit=poll_interval):
                time.sleep(poll_interval)

    def get_worker_stats(self):
        return {
            'is_running': self.is_running,
            'rabbitmq_connected': self.client.is_connected(),
        }

    def test_worker(self) -> bool:
        """Check broker, database and a profile create/delete round-trip"""
        try:
            rabbitmq_connected = self.client.is_connected()
            check_database(self.session_factory)

            test_user_id = f"test-user-{int(time.time() * 1000)}"
            result = self.profile_service.create_user_profile(test_user_id)
            if result.success and result.user_profile:
                self.profile_service.delete_user_profile(test_user_id)

            logger.info(
                f"User consumer worker test results: rabbitmq_connected={rabbitmq_connected}, "
                f"database_connected=True, user_profile_service_working={result.success}"
            )
            return rabbitmq_connected and result.success
        except Exception as e:
            logger.error(f"User consumer worker test failed: {e}")
            return False


class UserConsumerWorkerFactory:
    """Process-wide access to one UserConsumerWorker"""

    _worker: Optional[UserConsumerWorker] = None

    @classmethod
    def get_worker(cls, client: RabbitMQClient, session_factory, **kwargs) -> UserConsumerWorker:
        if cls._worker is None:
            cls._worker = UserConsumerWorker(client, session_factory, **kwargs)
        return cls._worker

    @classmethod
    def start_worker(cls, client: RabbitMQClient, session_factory, **kwargs) -> UserConsumerWorker:
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

    # Ensure tables exist (in case migrations not run yet)
    try:
        Base.metadata.create_all(session_factory.kw['bind'])
    except Exception as e:
        logger.warning(f"DB metadata creation skipped: {e}")

    worker = UserConsumerWorkerFactory.get_worker(client, session_factory, config=config)

    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, shutting down gracefully...")
        worker.request_stop()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        worker.start()
        worker.run()
    finally:
        UserConsumerWorkerFactory.stop_worker()
        RabbitMQFactory.shutdown()


if __name__ == '__main__':
    main()
