"""RabbitMQ configuration and queue definitions."""

from dataclasses import dataclass, field
from typing import Any, Dict, List

# Exchange names
TRANSCODE_EXCHANGE = 'transcoding.exchange'
USERS_EXCHANGE = 'users'

# Routing keys
USER_CREATED_ROUTING_KEY = 'user.created'

# Message TTLs
ONE_HOUR_MS = 3600000
TWO_HOURS_MS = 7200000

# Transcode queue suffixes and their TTLs, in declaration order
TRANSCODE_QUEUES = [
    ('priority', ONE_HOUR_MS),
    ('normal', ONE_HOUR_MS),
    ('low', TWO_HOURS_MS),
]

# Queues dropped before declaring so argument changes across deployments
# do not fail with PRECONDITION_FAILED
LEGACY_TRANSCODE_QUEUES = ['priority', 'normal', 'low', 'failed']

# Priority label -> numeric broker priority
PRIORITY_LEVELS = {
    'high': 10,
    'normal': 5,
    'low': 1,
}

# Queues reported by the stats endpoint
STATS_QUEUES = ['priority', 'normal', 'low']


@dataclass(frozen=True)
class ExchangeDefinition:
    name: str
    type: str
    durable: bool = True
    auto_delete: bool = False


@dataclass(frozen=True)
class QueueDefinition:
    name: str
    exchange: str
    routing_key: str
    message_ttl_ms: int
    durable: bool = True
    exclusive: bool = False
    auto_delete: bool = False

    @property
    def arguments(self) -> Dict[str, Any]:
        return {'x-message-ttl': self.message_ttl_ms}


@dataclass(frozen=True)
class Topology:
    """Everything the provisioner declares for one queue prefix."""
    prefix: str
    exchanges: List[ExchangeDefinition] = field(default_factory=list)
    queues: List[QueueDefinition] = field(default_factory=list)
    legacy_queues: List[str] = field(default_factory=list)


def transcode_queue_name(prefix: str, suffix: str) -> str:
    return f'{prefix}.transcode.{suffix}'


def users_created_queue_name(prefix: str) -> str:
    return f'{prefix}.users.created'


def build_topology(prefix: str) -> Topology:
    """Build exchange and queue definitions for the given queue prefix."""
    exchanges = [
        ExchangeDefinition(name=TRANSCODE_EXCHANGE, type='direct'),
        ExchangeDefinition(name=USERS_EXCHANGE, type='topic'),
    ]

    queues = [
        QueueDefinition(
            name=transcode_queue_name(prefix, suffix),
            exchange=TRANSCODE_EXCHANGE,
            routing_key=suffix,
            message_ttl_ms=ttl,
        )
        for suffix, ttl in TRANSCODE_QUEUES
    ]
    queues.append(
        QueueDefinition(
            name=users_created_queue_name(prefix),
            exchange=USERS_EXCHANGE,
            routing_key=USER_CREATED_ROUTING_KEY,
            message_ttl_ms=ONE_HOUR_MS,
        )
    )

    return Topology(
        prefix=prefix,
        exchanges=exchanges,
        queues=queues,
        legacy_queues=[transcode_queue_name(prefix, q) for q in LEGACY_TRANSCODE_QUEUES],
    )
