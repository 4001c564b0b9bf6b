"""Request handler that ensures a stream's Kafka topic exists.

``PUT /<namespace>/<stream-name>`` resolves the topic
``<namespace>_<stream-name>``, creates it on the broker when missing and
answers with the topic name and the gateway callers should use for it.

Every broker failure is caught here and turned into a 500 carrying the
offending topic or broker address; nothing propagates to the server layer.
There are no retries: a client re-issues the PUT, which converges because
existence is checked before creating.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from http import HTTPStatus

import structlog

from kafka_provisioner.config.models import ProvisionerConfig
from kafka_provisioner.streaming.admin import (
    AdminConnector,
    BrokerAdmin,
    BrokerConnectionError,
    BrokerError,
    TopicCreateError,
    TopicDescribeError,
    TopicState,
    connect_admin,
)
from kafka_provisioner.streaming.topics import (
    PATH_FORMAT_HINT,
    InvalidStreamPath,
    parse_stream_path,
    stream_topic_name,
)

logger = structlog.get_logger()

TOPIC_NUM_PARTITIONS = 1
TOPIC_REPLICATION_FACTOR = 1

JSON_CONTENT_TYPE = "application/json"
TEXT_CONTENT_TYPE = "text/plain; charset=utf-8"


class TopicStateError(BrokerError):
    """Raised when the broker reports an error code other than unknown-topic."""


@dataclass(frozen=True)
class ProvisionResponse:
    status: int
    body: bytes = b""
    content_type: str | None = None

    @classmethod
    def text(cls, status: int, message: str) -> ProvisionResponse:
        return cls(status, f"{message}\n".encode(), TEXT_CONTENT_TYPE)


class ProvisionerHandler:
    """Maps one HTTP request onto describe/create calls against the broker.

    Parameters
    ----------
    config:
        Startup configuration; only read, never mutated.
    connect:
        Factory returning a context manager that yields a :class:`BrokerAdmin`
        and releases it on exit.  Defaults to a real Kafka admin connection.
    """

    def __init__(
        self,
        config: ProvisionerConfig,
        connect: AdminConnector = connect_admin,
    ) -> None:
        self._config = config
        self._connect = connect

    @property
    def broker(self) -> str:
        return self._config.kafka.bootstrap_servers

    def handle(self, method: str, path: str) -> ProvisionResponse:
        if method != "PUT":
            return ProvisionResponse(HTTPStatus.METHOD_NOT_ALLOWED)

        try:
            namespace, stream = parse_stream_path(path)
        except InvalidStreamPath:
            logger.info("provisioner.bad_path", path=path)
            return ProvisionResponse.text(HTTPStatus.BAD_REQUEST, PATH_FORMAT_HINT)

        return self.provision(stream_topic_name(namespace, stream))

    def provision(self, topic: str) -> ProvisionResponse:
        """Ensure *topic* exists and build the response for it."""
        try:
            with self._connect(self._config.kafka) as admin:
                status = self._ensure_topic(admin, topic)
        except BrokerConnectionError as exc:
            return self._error(
                f'Error connecting to Kafka broker "{self.broker}": {exc}',
                broker=self.broker,
            )
        except TopicDescribeError as exc:
            return self._error(
                f'Error trying to list topics to see if "{topic}" exists: {exc}',
                topic=topic,
            )
        except TopicCreateError as exc:
            return self._error(f'Error creating topic "{topic}": {exc}', topic=topic)
        except TopicStateError as exc:
            return self._error(f'Error checking topic "{topic}": {exc}', topic=topic)

        return self._success(status, topic)

    def _ensure_topic(self, admin: BrokerAdmin, topic: str) -> HTTPStatus:
        """Return 200 if *topic* already existed, 201 if it was just created."""
        desc = admin.describe_topic(topic)
        if desc.state == TopicState.EXISTS:
            logger.info("provisioner.topic_exists", topic=topic)
            return HTTPStatus.OK
        if desc.state == TopicState.UNKNOWN:
            admin.create_topic(
                topic,
                num_partitions=TOPIC_NUM_PARTITIONS,
                replication_factor=TOPIC_REPLICATION_FACTOR,
                validate_only=False,
            )
            logger.info("provisioner.topic_created", topic=topic)
            return HTTPStatus.CREATED
        raise TopicStateError(desc.error or desc.state.value)

    def _success(self, status: HTTPStatus, topic: str) -> ProvisionResponse:
        try:
            payload = json.dumps(
                {"gateway": self._config.gateway, "topic": topic},
                separators=(",", ":"),
            )
        except (TypeError, ValueError) as exc:
            # Status is already decided; the caller gets it without a body.
            logger.error("provisioner.encode_failed", topic=topic, error=str(exc))
            return ProvisionResponse(status, content_type=JSON_CONTENT_TYPE)
        logger.info("provisioner.topic_reported", topic=topic, status=int(status))
        return ProvisionResponse(status, f"{payload}\n".encode(), JSON_CONTENT_TYPE)

    @staticmethod
    def _error(message: str, **context: str) -> ProvisionResponse:
        logger.error("provisioner.request_failed", message=message, **context)
        return ProvisionResponse.text(HTTPStatus.INTERNAL_SERVER_ERROR, message)
