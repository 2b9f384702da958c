"""Shared helpers for services (broker, database, messages, utils)."""

from .config import Config
from .database import check_database, create_session_factory, get_engine
from .rabbitmq_client import ConnectionState, RabbitMQClient, RabbitMQFactory
from .utils import json_response

__all__ = [
    'Config',
    'ConnectionState',
    'check_database',
    'create_session_factory',
    'get_engine',
    'RabbitMQClient',
    'RabbitMQFactory',
    'json_response',
]
