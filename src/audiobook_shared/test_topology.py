"""Tests for topology definitions and provisioning."""

import pytest
from pika.exceptions import ChannelClosedByBroker

from audiobook_shared.exceptions import TopologyError
from audiobook_shared.rabbitmq_config import build_topology
from audiobook_shared.topology import TopologyProvisioner
from conftest import FakeChannel


def test_topology_table():
    topology = build_topology('audiobook')

    rows = [(q.exchange, q.name, q.routing_key, q.message_ttl_ms) for q in topology.queues]
    assert rows == [
        ('transcoding.exchange', 'audiobook.transcode.priority', 'priority', 3600000),
        ('transcoding.exchange', 'audiobook.transcode.normal', 'normal', 3600000),
        ('transcoding.exchange', 'audiobook.transcode.low', 'low', 7200000),
        ('users', 'audiobook.users.created', 'user.created', 3600000),
    ]
    assert [(e.name, e.type) for e in topology.exchanges] == [
        ('transcoding.exchange', 'direct'),
        ('users', 'topic'),
    ]
    assert topology.legacy_queues == [
        'audiobook.transcode.priority',
        'audiobook.transcode.normal',
        'audiobook.transcode.low',
        'audiobook.transcode.failed',
    ]


def test_provision_declares_in_order():
    channel = FakeChannel()

    TopologyProvisioner(build_topology('books')).provision(channel)

    sequence = [name for name, _ in channel.calls]
    assert sequence == (
        ['queue_delete'] * 4
        + ['exchange_declare'] + ['queue_declare'] * 3 + ['queue_bind'] * 3
        + ['exchange_declare', 'queue_declare', 'queue_bind']
    )

    deletes = channel.calls_named('queue_delete')
    assert all(d['if_empty'] is False for d in deletes)

    for declare in channel.calls_named('queue_declare'):
        assert declare['durable'] is True
        assert declare['exclusive'] is False
        assert declare['auto_delete'] is False
        assert 'x-message-ttl' in declare['arguments']

    for declare in channel.calls_named('exchange_declare'):
        assert declare['durable'] is True
        assert declare['auto_delete'] is False

    bind = channel.calls_named('queue_bind')[-1]
    assert bind == {'queue': 'books.users.created', 'exchange': 'users', 'routing_key': 'user.created'}


def test_missing_queue_on_delete_reopens_channel():
    closed = FakeChannel()
    closed.errors['queue_delete'] = ChannelClosedByBroker(404, 'NOT_FOUND')
    fresh = FakeChannel()
    reopened = []

    def reopen():
        reopened.append(fresh)
        return fresh

    result = TopologyProvisioner(build_topology('audiobook')).provision(closed, reopen_channel=reopen)

    assert result is fresh
    assert len(reopened) == 1
    # The remaining deletes and all declarations happen on the fresh channel
    assert len(fresh.calls_named('queue_delete')) == 3
    assert len(fresh.calls_named('queue_declare')) == 4


def test_other_delete_errors_are_swallowed():
    channel = FakeChannel()
    channel.errors['queue_delete'] = RuntimeError('boom')

    TopologyProvisioner(build_topology('audiobook')).provision(channel)

    assert len(channel.calls_named('queue_bind')) == 4


def test_incompatible_declare_raises_topology_error():
    channel = FakeChannel()
    channel.errors['queue_declare'] = ChannelClosedByBroker(406, 'PRECONDITION_FAILED')

    with pytest.raises(TopologyError):
        TopologyProvisioner(build_topology('audiobook')).provision(channel)
