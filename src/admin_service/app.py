"""
Admin Service
Health, queue statistics and worker self-tests for the broker core
"""
import os
import logging
from datetime import datetime

from flask import Flask
from prometheus_client import start_http_server

from audiobook_shared.config import Config as BaseConfig
from audiobook_shared.database import create_session_factory
from audiobook_shared.exceptions import ChannelUnavailableError
from audiobook_shared.rabbitmq_client import RabbitMQClient, RabbitMQFactory
from audiobook_shared.utils import json_response, setup_logging

logger = logging.getLogger(__name__)


class Config(BaseConfig):
    ADMIN_PORT = int(os.getenv('ADMIN_PORT', 8081))
    METRICS_PORT = int(os.getenv('METRICS_PORT', 9108))


def create_app(client: RabbitMQClient, transcoding_worker=None, user_worker=None) -> Flask:
    """Create the admin Flask app around an existing broker client"""
    app = Flask(__name__)
    init_routes(app, client, transcoding_worker, user_worker)
    return app


def init_routes(app, client, transcoding_worker, user_worker):
    """Initialize routes with app context"""

    @app.before_request
    def pump_broker():
        # Heartbeats and due reconnect attempts run on the request thread
        client.process_data_events()

    @app.route('/health', methods=['GET'])
    def health_check():
        """Health check endpoint"""
        return json_response({
            'status': 'OK',
            'service': 'admin',
            'rabbitmq_connected': client.is_connected(),
            'timestamp': datetime.utcnow().isoformat()
        })

    @app.route('/api/v1/queues/stats', methods=['GET'])
    def queue_stats():
        """Message and consumer counts per transcode queue"""
        try:
            stats = client.get_queue_stats()
        except ChannelUnavailableError as e:
            return json_response({'error': str(e)}, 503)

        return json_response({
            'data': {name: s.to_dict() for name, s in stats.items()}
        })

    @app.route('/api/v1/workers/test', methods=['GET'])
    def test_workers():
        """Run the self-test of each configured worker"""
        results = {}
        if transcoding_worker is not None:
            results['transcoding'] = transcoding_worker.test_worker()
        if user_worker is not None:
            results['user_consumer'] = user_worker.test_worker()

        status = 200 if all(results.values()) else 503
        return json_response({'data': results}, status)


def main():
    """Main entry point"""
    from transcoding_service.worker import TranscodingWorkerFactory

    config = Config()
    setup_logging(config)

    client = RabbitMQFactory.get_client(config)
    session_factory = create_session_factory(config.DATABASE_URL)
    transcoding_worker = TranscodingWorkerFactory.get_worker(client, session_factory)

    try:
        transcoding_worker.start()
    except Exception as e:
        logger.error(f"RabbitMQ unavailable at startup: {e}")

    start_http_server(config.METRICS_PORT)
    app = create_app(client, transcoding_worker=transcoding_worker)
    # pika's blocking connection must stay on one thread
    app.run(host='0.0.0.0', port=config.ADMIN_PORT, threaded=False)


if __name__ == '__main__':
    main()
