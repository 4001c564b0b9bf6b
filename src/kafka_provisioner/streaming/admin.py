"""Narrow Kafka cluster-admin interface used by the provisioner.

Only the operations needed to provision a topic are exposed: connect,
describe a single topic, create a single topic and close.  The
:class:`BrokerAdmin` protocol is what the request handler depends on, so tests
can substitute an in-memory fake for :class:`KafkaBrokerAdmin`.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import AbstractContextManager, contextmanager
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Protocol, runtime_checkable

import structlog
from confluent_kafka import KafkaError, KafkaException, TopicCollection
from confluent_kafka.admin import AdminClient, NewTopic  # type: ignore[attr-defined]

from kafka_provisioner.config.models import KafkaConfig
from kafka_provisioner.streaming.auth import build_kafka_auth_config

logger = structlog.get_logger()

# Error codes meaning the broker could not be asked at all, as opposed to a
# per-topic answer.
_TRANSPORT_ERROR_CODES = frozenset(
    {
        KafkaError._TRANSPORT,
        KafkaError._TIMED_OUT,
        KafkaError._ALL_BROKERS_DOWN,
    }
)


class BrokerError(Exception):
    """Base class for cluster-admin failures."""


class BrokerConnectionError(BrokerError):
    """Raised when the admin client cannot reach the broker."""


class TopicDescribeError(BrokerError):
    """Raised when topic metadata cannot be fetched."""


class TopicCreateError(BrokerError):
    """Raised when the broker rejects a create-topic request."""


class TopicState(StrEnum):
    EXISTS = "exists"
    UNKNOWN = "unknown"
    ERROR = "error"


@dataclass(frozen=True)
class TopicDescription:
    name: str
    state: TopicState
    error: str | None = None
    partitions: int = 0


@runtime_checkable
class BrokerAdmin(Protocol):
    """Cluster-admin operations needed to provision a single topic."""

    def describe_topic(self, name: str) -> TopicDescription:
        """Report whether *name* exists; raise TopicDescribeError on transport failure."""
        ...

    def create_topic(
        self,
        name: str,
        *,
        num_partitions: int,
        replication_factor: int,
        validate_only: bool = False,
    ) -> None:
        """Create *name*; raise TopicCreateError if the broker rejects it."""
        ...

    def close(self) -> None:
        """Release the connection to the broker."""
        ...


AdminConnector = Callable[[KafkaConfig], AbstractContextManager[BrokerAdmin]]


def build_admin_config(config: KafkaConfig) -> dict[str, Any]:
    """Build the confluent_kafka AdminClient config dict."""
    admin_conf: dict[str, Any] = {
        "bootstrap.servers": config.bootstrap_servers,
        "client.id": config.client_id,
        "broker.version.fallback": config.broker_version_fallback,
        "socket.connection.setup.timeout.ms": int(
            config.connect_timeout_seconds * 1000
        ),
    }
    admin_conf.update(build_kafka_auth_config(config))
    return admin_conf


def _kafka_error(exc: KafkaException) -> KafkaError | None:
    if exc.args and isinstance(exc.args[0], KafkaError):
        return exc.args[0]
    return None


class KafkaBrokerAdmin:
    """BrokerAdmin backed by ``confluent_kafka.admin.AdminClient``."""

    def __init__(self, client: AdminClient, config: KafkaConfig) -> None:
        self._client: AdminClient | None = client
        self._config = config

    @classmethod
    def connect(cls, config: KafkaConfig) -> KafkaBrokerAdmin:
        """Build an admin client and verify the cluster answers a metadata request.

        librdkafka connects lazily, so the metadata probe is what surfaces an
        unreachable broker at connect time.
        """
        try:
            client = AdminClient(build_admin_config(config))
            meta = client.list_topics(timeout=config.connect_timeout_seconds)
        except (KafkaException, ValueError, TypeError) as exc:
            raise BrokerConnectionError(str(exc)) from exc
        logger.debug(
            "broker.connected",
            broker=config.bootstrap_servers,
            brokers=len(meta.brokers),
        )
        return cls(client, config)

    @property
    def client(self) -> AdminClient:
        if self._client is None:
            msg = "Admin client is closed"
            raise BrokerError(msg)
        return self._client

    def describe_topic(self, name: str) -> TopicDescription:
        try:
            futures = self.client.describe_topics(
                TopicCollection([name]),
                request_timeout=self._config.request_timeout_seconds,
            )
            desc = futures[name].result()
        except KafkaException as exc:
            err = _kafka_error(exc)
            if err is None or err.code() in _TRANSPORT_ERROR_CODES:
                raise TopicDescribeError(str(exc)) from exc
            if err.code() == KafkaError.UNKNOWN_TOPIC_OR_PART:
                return TopicDescription(name=name, state=TopicState.UNKNOWN)
            return TopicDescription(name=name, state=TopicState.ERROR, error=str(err))
        return TopicDescription(
            name=name, state=TopicState.EXISTS, partitions=len(desc.partitions)
        )

    def create_topic(
        self,
        name: str,
        *,
        num_partitions: int,
        replication_factor: int,
        validate_only: bool = False,
    ) -> None:
        new_topic = NewTopic(
            name,
            num_partitions=num_partitions,
            replication_factor=replication_factor,
        )
        try:
            futures = self.client.create_topics(
                [new_topic],
                request_timeout=self._config.request_timeout_seconds,
                validate_only=validate_only,
            )
            futures[name].result()
        except KafkaException as exc:
            raise TopicCreateError(str(exc)) from exc

    def close(self) -> None:
        # AdminClient has no explicit close; librdkafka tears the handle down
        # once the last reference goes away.
        if self._client is None:
            msg = "Admin client already closed"
            raise BrokerError(msg)
        self._client = None


@contextmanager
def connect_admin(config: KafkaConfig) -> Iterator[BrokerAdmin]:
    """Open a KafkaBrokerAdmin for the duration of the ``with`` block."""
    admin = KafkaBrokerAdmin.connect(config)
    try:
        yield admin
    finally:
        try:
            admin.close()
        except BrokerError as exc:
            logger.error(
                "broker.disconnect_failed",
                broker=config.bootstrap_servers,
                error=str(exc),
            )
