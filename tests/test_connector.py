"""Tests for amqpbench.connector: connection management and channel provisioning."""

import ssl

import pytest
from pika import exceptions as pika_exceptions

from amqpbench import exceptions
from amqpbench.connector import DEFAULT_HEARTBEAT, AmqpSession, ChannelProvisioner, ConnectionManager

TOPOLOGY_CALLS = {"queue_delete", "queue_declare", "exchange_delete", "exchange_declare", "queue_bind"}


def topology(broker):
    return [name for name in broker.names() if name in TOPOLOGY_CALLS]


# =====================================================================
#   ConnectionManager
# =====================================================================


class TestConnectionManager:
    def test_parameters_follow_host_order(self, make_config):
        config = make_config(host="r1,r2,r3", port=5673, virtual_host="/perf", username="u", password="p")
        params = ConnectionManager(config).build_parameters()

        assert [p.host for p in params] == ["r1", "r2", "r3"]
        for p in params:
            assert p.port == 5673
            assert p.virtual_host == "/perf"
            assert p.credentials.username == "u"
            assert p.credentials.password == "p"
            assert p.heartbeat == DEFAULT_HEARTBEAT
            assert p.socket_timeout == 1.0
            assert p.stack_timeout == 1.0
            assert p.ssl_options is None

    def test_ssl_without_ca_trusts_any_certificate(self, make_config):
        params = ConnectionManager(make_config(use_ssl=True)).build_parameters()

        context = params[0].ssl_options.context
        assert context.verify_mode == ssl.CERT_NONE
        assert context.check_hostname is False

    def test_ssl_with_missing_ca_is_setup_error(self, make_config, tmp_path):
        config = make_config(use_ssl=True, ssl_ca_certs=str(tmp_path / "missing.pem"))

        with pytest.raises(exceptions.TLSSetupError):
            ConnectionManager(config).build_parameters()

    def test_connection_is_reused_while_open(self, broker, make_config):
        manager = ConnectionManager(make_config(), broker.connect)

        first = manager.ensure_connection()
        second = manager.ensure_connection()

        assert first is second
        assert broker.count("connect") == 1

    def test_reconnects_when_closed(self, broker, make_config):
        manager = ConnectionManager(make_config(), broker.connect)

        first = manager.ensure_connection()
        first.is_open = False
        second = manager.ensure_connection()

        assert second is not first
        assert broker.count("connect") == 2

    def test_unreachable_raises_connection_error(self, broker, make_config):
        broker.connect_error = pika_exceptions.AMQPConnectionError("refused")
        manager = ConnectionManager(make_config(), broker.connect)

        with pytest.raises(exceptions.BrokerConnectionError) as exc_info:
            manager.ensure_connection()

        assert isinstance(exc_info.value.cause, pika_exceptions.AMQPConnectionError)
        assert manager.connection is None
        assert broker.count("connect") == 1

    def test_no_hosts_configured(self, broker, make_config):
        manager = ConnectionManager(make_config(host=" , "), broker.connect)

        with pytest.raises(exceptions.BrokerConnectionError):
            manager.ensure_connection()
        assert broker.count("connect") == 0

    def test_close_is_idempotent(self, broker, make_config):
        manager = ConnectionManager(make_config(), broker.connect)
        manager.ensure_connection()

        manager.close()
        manager.close()

        assert broker.count("connection_close") == 1
        assert manager.is_open is False

    def test_close_failure_is_swallowed(self, broker, make_config):
        manager = ConnectionManager(make_config(), broker.connect)
        manager.ensure_connection()
        broker.fail_on("connection_close", pika_exceptions.StreamLostError("gone"))

        manager.close()

        assert manager.connection is None

    def test_no_reconnect_after_close(self, broker, make_config):
        manager = ConnectionManager(make_config(), broker.connect)
        manager.ensure_connection()
        manager.close()

        with pytest.raises(exceptions.SamplerClosedError):
            manager.ensure_connection()
        assert manager.closed is True
        assert broker.count("connect") == 1

    def test_close_during_handshake_drops_new_connection(self, broker, make_config):
        holder = {}

        def connect_while_closing(parameters):
            holder["manager"].close()
            return broker.connect(parameters)

        manager = ConnectionManager(make_config(), connect_while_closing)
        holder["manager"] = manager

        with pytest.raises(exceptions.SamplerClosedError):
            manager.ensure_connection()

        assert manager.connection is None
        assert broker.count("connection_close") == 1
        assert not broker.connections[0].is_open


# =====================================================================
#   ChannelProvisioner
# =====================================================================


def make_provisioner(broker, config, setup=None):
    return ChannelProvisioner(config, ConnectionManager(config, broker.connect), setup=setup)


class TestChannelProvisioner:
    def test_queue_exchange_then_bind(self, broker, make_config):
        config = make_config(
            queue={"name": "jobs", "message_ttl": 1000},
            exchange={"name": "ex", "type": "topic"},
            routing_key="jobs.#",
        )

        make_provisioner(broker, config).ensure_channel()

        assert topology(broker) == ["queue_declare", "exchange_declare", "queue_bind"]
        assert broker.calls_named("queue_declare")[0] == {
            "queue": "jobs",
            "durable": True,
            "exclusive": False,
            "auto_delete": False,
            "arguments": {"x-message-ttl": 1000},
        }
        assert broker.calls_named("exchange_declare")[0]["exchange_type"] == "topic"
        assert broker.calls_named("queue_bind")[0] == {"queue": "jobs", "exchange": "ex", "routing_key": "jobs.#"}

    def test_declared_once_per_channel_lifetime(self, broker, make_config):
        config = make_config(queue={"name": "jobs"}, exchange={"name": "ex"})
        provisioner = make_provisioner(broker, config)

        first = provisioner.ensure_channel()
        for _ in range(5):
            assert provisioner.ensure_channel() is first

        assert topology(broker) == ["queue_declare", "exchange_declare", "queue_bind"]
        assert broker.count("channel") == 1

    def test_nothing_declared_without_names(self, broker, make_config):
        make_provisioner(broker, make_config()).ensure_channel()
        assert topology(broker) == []

    def test_exchange_without_queue_is_not_bound(self, broker, make_config):
        make_provisioner(broker, make_config(exchange={"name": "ex"})).ensure_channel()
        assert topology(broker) == ["exchange_declare"]

    def test_redeclare_deletes_before_declare(self, broker, make_config):
        config = make_config(
            queue={"name": "jobs", "redeclare": True},
            exchange={"name": "ex", "redeclare": True},
        )

        make_provisioner(broker, config).ensure_channel()

        assert topology(broker) == [
            "queue_delete",
            "queue_declare",
            "exchange_delete",
            "exchange_declare",
            "queue_bind",
        ]

    def test_failed_delete_is_ignored_and_channel_replaced(self, broker, make_config):
        config = make_config(exchange={"name": "ex", "redeclare": True})
        broker.fail_on("exchange_delete", pika_exceptions.ChannelClosedByBroker(404, "NOT_FOUND"))
        provisioner = make_provisioner(broker, config)

        channel = provisioner.ensure_channel()

        assert channel.is_open
        assert topology(broker) == ["exchange_delete", "exchange_declare"]
        assert broker.count("channel") == 2
        assert len(broker.open_channels) == 1

    def test_declare_conflict_raises_and_next_call_recovers(self, broker, make_config):
        config = make_config(queue={"name": "jobs"}, exchange={"name": "ex"})
        broker.fail_on(
            "exchange_declare",
            pika_exceptions.ChannelClosedByBroker(406, "PRECONDITION_FAILED - inequivalent arg 'type'"),
        )
        provisioner = make_provisioner(broker, config)

        with pytest.raises(exceptions.ChannelProtocolError) as exc_info:
            provisioner.ensure_channel()
        assert exc_info.value.reply_code == 406
        assert provisioner.channel is None

        channel = provisioner.ensure_channel()

        assert channel.is_open
        assert broker.count("exchange_declare") == 2
        assert broker.count("queue_declare") == 2
        assert len(broker.open_channels) == 1

    def test_closed_channel_is_reopened_and_redeclared(self, broker, make_config):
        config = make_config(queue={"name": "jobs"})
        provisioner = make_provisioner(broker, config)

        first = provisioner.ensure_channel()
        first.is_open = False
        second = provisioner.ensure_channel()

        assert second is not first
        assert broker.count("queue_declare") == 2

    def test_setup_hook_runs_once_per_channel(self, broker, make_config):
        seen = []
        provisioner = make_provisioner(broker, make_config(), setup=seen.append)

        channel = provisioner.ensure_channel()
        provisioner.ensure_channel()

        assert seen == [channel]

    def test_failed_setup_discards_channel(self, broker, make_config):
        def exploding_setup(channel):
            raise pika_exceptions.ChannelClosedByBroker(540, "NOT_IMPLEMENTED")

        provisioner = make_provisioner(broker, make_config(), setup=exploding_setup)

        with pytest.raises(exceptions.ChannelProtocolError):
            provisioner.ensure_channel()
        assert provisioner.is_open is False

    def test_purge_without_queue_is_noop(self, broker, make_config):
        provisioner = make_provisioner(broker, make_config())
        provisioner.ensure_channel()

        assert provisioner.purge_queue() is False
        assert broker.count("queue_purge") == 0

    def test_purge_replaces_channel_closed_by_error(self, broker, make_config):
        provisioner = make_provisioner(broker, make_config(queue={"name": "jobs"}))
        first = provisioner.ensure_channel()
        first.is_open = False

        assert provisioner.purge_queue() is True

        assert broker.count("channel") == 2
        assert provisioner.channel is not first
        assert broker.calls_named("queue_purge") == [{"queue": "jobs"}]

    def test_no_channel_after_close(self, broker, make_config):
        provisioner = make_provisioner(broker, make_config(queue={"name": "jobs"}))
        provisioner.ensure_channel()
        provisioner.close()

        with pytest.raises(exceptions.SamplerClosedError):
            provisioner.ensure_channel()
        assert broker.count("channel") == 1


# =====================================================================
#   AmqpSession
# =====================================================================


class TestAmqpSession:
    def test_close_closes_channel_before_connection(self, broker, make_config):
        session = AmqpSession(make_config(queue={"name": "jobs"}), broker.connect)
        session.ensure_channel()

        session.close()

        names = broker.names()
        assert names.index("channel_close") < names.index("connection_close")

    def test_purge_failure_is_swallowed(self, broker, make_config):
        session = AmqpSession(make_config(queue={"name": "jobs"}), broker.connect)
        session.ensure_channel()
        broker.fail_on("queue_purge", pika_exceptions.ChannelClosedByBroker(404, "NOT_FOUND"))

        assert session.purge_queue_quietly() is False
        assert broker.count("queue_purge") == 1

    def test_closed_session_refuses_channels(self, broker, make_config):
        session = AmqpSession(make_config(queue={"name": "jobs"}), broker.connect)
        session.ensure_channel()
        session.close()

        assert session.closed is True
        with pytest.raises(exceptions.SamplerClosedError):
            session.ensure_channel()
        assert broker.count("connect") == 1
        assert broker.open_channels == []
