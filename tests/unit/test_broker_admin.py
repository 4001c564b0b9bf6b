"""Unit tests for the confluent_kafka-backed broker admin."""

from __future__ import annotations

from concurrent.futures import Future
from unittest.mock import MagicMock, patch

import pytest
from confluent_kafka import KafkaError, KafkaException
from structlog.testing import capture_logs

from kafka_provisioner.config.models import KafkaConfig, ProvisionerConfig
from kafka_provisioner.provisioning.handler import ProvisionerHandler
from kafka_provisioner.streaming.admin import (
    BrokerAdmin,
    BrokerConnectionError,
    BrokerError,
    KafkaBrokerAdmin,
    TopicCreateError,
    TopicDescribeError,
    TopicDescription,
    TopicState,
    build_admin_config,
    connect_admin,
)

ADMIN_CLS = "kafka_provisioner.streaming.admin.AdminClient"


def _config() -> KafkaConfig:
    return KafkaConfig(bootstrap_servers="broker:9092")


def _done(value=None) -> Future:
    fut: Future = Future()
    fut.set_result(value)
    return fut


def _failed(code: int) -> Future:
    fut: Future = Future()
    fut.set_exception(KafkaException(KafkaError(code)))
    return fut


def _admin(client: MagicMock) -> KafkaBrokerAdmin:
    return KafkaBrokerAdmin(client, _config())


class TestBuildAdminConfig:
    def test_identity_and_protocol_floor(self):
        conf = build_admin_config(_config())
        assert conf["bootstrap.servers"] == "broker:9092"
        assert conf["client.id"] == "kafka-provisioner"
        assert conf["broker.version.fallback"] == "0.11.0"
        assert conf["socket.connection.setup.timeout.ms"] == 10000

    def test_no_auth_keys_by_default(self):
        conf = build_admin_config(_config())
        assert "security.protocol" not in conf


class TestConnect:
    def test_connect_probes_metadata(self):
        with patch(ADMIN_CLS) as mock_cls:
            mock_cls.return_value.list_topics.return_value.brokers = {1: object()}
            admin = KafkaBrokerAdmin.connect(_config())
        mock_cls.return_value.list_topics.assert_called_once_with(timeout=10.0)
        assert isinstance(admin, BrokerAdmin)

    def test_unreachable_broker_raises_connection_error(self):
        with patch(ADMIN_CLS) as mock_cls:
            mock_cls.return_value.list_topics.side_effect = KafkaException(
                KafkaError(KafkaError._TRANSPORT)
            )
            with pytest.raises(BrokerConnectionError):
                KafkaBrokerAdmin.connect(_config())

    def test_invalid_client_config_raises_connection_error(self):
        with patch(ADMIN_CLS, side_effect=KafkaException(KafkaError(KafkaError._INVALID_ARG))):
            with pytest.raises(BrokerConnectionError):
                KafkaBrokerAdmin.connect(_config())

    def test_connect_admin_closes_on_exit(self):
        with patch(ADMIN_CLS):
            with connect_admin(_config()) as admin:
                assert admin.client is not None
            with pytest.raises(BrokerError, match="closed"):
                admin.client  # noqa: B018

    def test_connect_admin_closes_when_body_raises(self):
        with patch(ADMIN_CLS):
            with pytest.raises(RuntimeError):
                with connect_admin(_config()) as admin:
                    raise RuntimeError("boom")
            with pytest.raises(BrokerError):
                admin.client  # noqa: B018


class TestDescribeTopic:
    def test_existing_topic(self):
        client = MagicMock()
        desc = MagicMock()
        desc.partitions = [object()]
        client.describe_topics.return_value = {"ns_s": _done(desc)}
        result = _admin(client).describe_topic("ns_s")
        assert result.state == TopicState.EXISTS
        assert result.partitions == 1

    def test_unknown_topic(self):
        client = MagicMock()
        client.describe_topics.return_value = {
            "ns_s": _failed(KafkaError.UNKNOWN_TOPIC_OR_PART)
        }
        result = _admin(client).describe_topic("ns_s")
        assert result.state == TopicState.UNKNOWN
        assert result.error is None

    def test_other_topic_error_code(self):
        client = MagicMock()
        client.describe_topics.return_value = {
            "ns_s": _failed(KafkaError.TOPIC_AUTHORIZATION_FAILED)
        }
        result = _admin(client).describe_topic("ns_s")
        assert result.state == TopicState.ERROR
        assert result.error

    def test_transport_error_raises(self):
        client = MagicMock()
        client.describe_topics.return_value = {"ns_s": _failed(KafkaError._TIMED_OUT)}
        with pytest.raises(TopicDescribeError):
            _admin(client).describe_topic("ns_s")

    def test_describe_after_close_raises(self):
        admin = _admin(MagicMock())
        admin.close()
        with pytest.raises(BrokerError):
            admin.describe_topic("ns_s")


class TestCreateTopic:
    def test_create_passes_topic_settings(self):
        client = MagicMock()
        client.create_topics.return_value = {"ns_s": _done()}
        _admin(client).create_topic(
            "ns_s", num_partitions=1, replication_factor=1, validate_only=False
        )
        args, kwargs = client.create_topics.call_args
        new_topic = args[0][0]
        assert new_topic.topic == "ns_s"
        assert new_topic.num_partitions == 1
        assert new_topic.replication_factor == 1
        assert kwargs["validate_only"] is False

    def test_create_failure_raises(self):
        client = MagicMock()
        client.create_topics.return_value = {
            "ns_s": _failed(KafkaError.TOPIC_ALREADY_EXISTS)
        }
        with pytest.raises(TopicCreateError):
            _admin(client).create_topic("ns_s", num_partitions=1, replication_factor=1)

    def test_double_close_raises(self):
        admin = _admin(MagicMock())
        admin.close()
        with pytest.raises(BrokerError):
            admin.close()


class TestCloseFailure:
    def test_close_failure_is_logged(self):
        with (
            patch(ADMIN_CLS),
            patch.object(
                KafkaBrokerAdmin, "close", side_effect=BrokerError("socket gone")
            ),
            capture_logs() as logs,
        ):
            with connect_admin(_config()):
                pass
        failed = [e for e in logs if e["event"] == "broker.disconnect_failed"]
        assert len(failed) == 1
        assert failed[0]["log_level"] == "error"
        assert failed[0]["broker"] == "broker:9092"
        assert failed[0]["error"] == "socket gone"

    def test_close_failure_keeps_response_status(self, config: ProvisionerConfig):
        admin = MagicMock()
        admin.describe_topic.return_value = TopicDescription(
            name="orders_created", state=TopicState.EXISTS, partitions=1
        )
        admin.close.side_effect = BrokerError("socket gone")
        with (
            patch.object(KafkaBrokerAdmin, "connect", return_value=admin),
            capture_logs() as logs,
        ):
            resp = ProvisionerHandler(config).handle("PUT", "/orders/created")
        assert resp.status == 200
        assert b'"topic":"orders_created"' in resp.body
        admin.close.assert_called_once()
        assert any(e["event"] == "broker.disconnect_failed" for e in logs)
