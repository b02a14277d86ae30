"""Tests for amqpbench.operations: publish, consume, header formatting and classification."""

import pytest
from pika import exceptions as pika_exceptions

from amqpbench import exceptions
from amqpbench.operations import (
    ConsumeOperation,
    Delivery,
    Outcome,
    OutcomeKind,
    PublishOperation,
    classify,
    format_headers,
)
from tests.fakes import FakeBroker, make_message


def open_channel(broker: FakeBroker):
    return broker.connect([]).channel()


# =====================================================================
#   PublishOperation
# =====================================================================


class TestPublishProperties:
    def test_defaults(self, make_config):
        props = PublishOperation(make_config()).build_properties()

        assert props.content_type == "text/plain"
        assert props.delivery_mode == 1
        assert props.priority == 0
        assert props.correlation_id is None
        assert props.message_id is None
        assert props.headers is None

    def test_metadata_copied(self, make_config):
        config = make_config(
            publish={
                "content_type": "application/json",
                "persistent": True,
                "correlation_id": "corr-1",
                "reply_to_queue": "replies",
                "message_type": "order.created",
                "message_id": "msg-1",
                "headers": {"tenant": "acme"},
            }
        )

        props = PublishOperation(config).build_properties()

        assert props.content_type == "application/json"
        assert props.delivery_mode == 2
        assert props.correlation_id == "corr-1"
        assert props.reply_to == "replies"
        assert props.type == "order.created"
        assert props.message_id == "msg-1"
        assert props.headers == {"tenant": "acme"}


class TestPublishOperation:
    def test_publishes_exactly_iterations_times(self, broker, make_config):
        config = make_config(iterations=4, exchange={"name": "ex"}, routing_key="rk")
        channel = open_channel(broker)

        outcome = PublishOperation(config).publish(channel, b"hello")

        assert outcome.kind is OutcomeKind.OK
        assert outcome.payload == b"hello"
        publishes = broker.calls_named("basic_publish")
        assert len(publishes) == 4
        assert all(p["exchange"] == "ex" and p["routing_key"] == "rk" and p["body"] == b"hello" for p in publishes)
        assert broker.count("tx_commit") == 0

    def test_properties_built_once_and_shared(self, broker, make_config):
        channel = open_channel(broker)

        PublishOperation(make_config(iterations=3)).publish(channel, b"x")

        props = [p["properties"] for p in broker.calls_named("basic_publish")]
        assert props[0] is props[1] is props[2]

    def test_commit_after_loop(self, broker, make_config):
        channel = open_channel(broker)

        PublishOperation(make_config(iterations=2, use_tx=True)).publish(channel, b"x")

        assert broker.names()[-3:] == ["basic_publish", "basic_publish", "tx_commit"]

    def test_failure_is_not_retried(self, broker, make_config):
        broker.fail_on("basic_publish", pika_exceptions.ChannelClosedByBroker(404, "NOT_FOUND - no exchange"))
        channel = open_channel(broker)

        outcome = PublishOperation(make_config(iterations=5)).publish(channel, b"x")

        assert outcome.kind is OutcomeKind.TRANSPORT
        assert "NOT_FOUND" in outcome.message
        assert broker.count("basic_publish") == 1

    def test_commit_failure(self, broker, make_config):
        broker.fail_on("tx_commit", pika_exceptions.ConnectionClosedByBroker(320, "CONNECTION_FORCED"))
        channel = open_channel(broker)

        outcome = PublishOperation(make_config(use_tx=True)).publish(channel, b"x")

        assert outcome.kind is OutcomeKind.BROKER_CLOSED
        assert outcome.escalates


# =====================================================================
#   ConsumeOperation
# =====================================================================


class TestConsumeOperation:
    def test_empty_queue_is_no_message(self, broker, make_config):
        channel = open_channel(broker)

        outcome = ConsumeOperation(make_config(queue={"name": "jobs"})).consume(channel)

        assert outcome.kind is OutcomeKind.NO_MESSAGE
        assert not outcome.escalates
        assert broker.count("basic_ack") == 0

    def test_single_non_blocking_get(self, broker, make_config):
        broker.messages.extend([make_message(delivery_tag=1), make_message(delivery_tag=2)])
        channel = open_channel(broker)

        ConsumeOperation(make_config(queue={"name": "jobs"})).consume(channel)

        assert broker.calls_named("basic_get") == [{"queue": "jobs", "auto_ack": False}]
        assert len(broker.messages) == 1

    def test_acks_exactly_the_fetched_tag(self, broker, make_config):
        broker.messages.append(make_message(body=b"hi", delivery_tag=42, message_count=7))
        channel = open_channel(broker)

        outcome = ConsumeOperation(make_config(queue={"name": "jobs"})).consume(channel)

        assert outcome.ok
        assert outcome.delivery.delivery_tag == 42
        assert outcome.delivery.message_count == 7
        assert outcome.delivery.text == "hi"
        assert broker.calls_named("basic_ack") == [{"delivery_tag": 42, "multiple": False}]

    def test_no_ack_with_auto_ack(self, broker, make_config):
        broker.messages.append(make_message())
        channel = open_channel(broker)

        outcome = ConsumeOperation(make_config(queue={"name": "jobs"}, auto_ack=True)).consume(channel)

        assert outcome.ok
        assert broker.calls_named("basic_get")[0]["auto_ack"] is True
        assert broker.count("basic_ack") == 0

    def test_commit_after_ack(self, broker, make_config):
        broker.messages.append(make_message(delivery_tag=3))
        channel = open_channel(broker)

        ConsumeOperation(make_config(queue={"name": "jobs"}, use_tx=True)).consume(channel)

        assert broker.names()[-2:] == ["basic_ack", "tx_commit"]

    @pytest.mark.parametrize(
        "error, kind",
        [
            (pika_exceptions.ConnectionClosedByBroker(320, "CONNECTION_FORCED"), OutcomeKind.BROKER_CLOSED),
            (pika_exceptions.ConsumerCancelled("cancelled"), OutcomeKind.CANCELLED),
            (pika_exceptions.ChannelClosedByBroker(404, "NOT_FOUND - no queue"), OutcomeKind.TRANSPORT),
        ],
    )
    def test_fetch_failures_are_classified(self, broker, make_config, error, kind):
        broker.fail_on("basic_get", error)
        channel = open_channel(broker)

        outcome = ConsumeOperation(make_config(queue={"name": "jobs"})).consume(channel)

        assert outcome.kind is kind
        assert outcome.error is error


# =====================================================================
#   format_headers
# =====================================================================


class TestFormatHeaders:
    def test_fixed_fields_precede_custom_headers(self):
        delivery = Delivery(
            body=b"",
            exchange="ex",
            routing_key="rk",
            delivery_tag=9,
            timestamp=1700000000,
            headers={"a-first": "1", "b": 2},
        )

        assert format_headers(delivery) == (
            "Timestamp: 1700000000\n"
            "Exchange: ex\n"
            "Routing Key: rk\n"
            "Delivery Tag: 9\n"
            "a-first: 1\n"
            "b: 2\n"
        )

    def test_missing_timestamp_is_blank(self):
        delivery = Delivery(delivery_tag=1)
        assert format_headers(delivery).splitlines()[0] == "Timestamp: "


# =====================================================================
#   classify
# =====================================================================


class TestClassify:
    @pytest.mark.parametrize(
        "error, kind",
        [
            (exceptions.ShutdownSignal(), OutcomeKind.BROKER_CLOSED),
            (pika_exceptions.StreamLostError("lost"), OutcomeKind.BROKER_CLOSED),
            (exceptions.ConsumerCancelled(), OutcomeKind.CANCELLED),
            (exceptions.BrokerConnectionError(), OutcomeKind.TRANSPORT),
            (exceptions.ChannelProtocolError(reply_code=406), OutcomeKind.TRANSPORT),
            (pika_exceptions.ChannelWrongStateError("closed"), OutcomeKind.TRANSPORT),
            (ConnectionResetError("reset"), OutcomeKind.TRANSPORT),
            (exceptions.TLSSetupError(), OutcomeKind.FAILED),
            (ValueError("bad"), OutcomeKind.FAILED),
        ],
    )
    def test_kinds(self, error, kind):
        assert classify(error).kind is kind

    def test_only_shutdown_and_cancel_escalate(self):
        escalating = {k for k in OutcomeKind if Outcome(kind=k).escalates}
        assert escalating == {OutcomeKind.BROKER_CLOSED, OutcomeKind.CANCELLED}

    def test_message_falls_back_to_type_name(self):
        assert classify(pika_exceptions.AMQPError()).message == "AMQPError"
