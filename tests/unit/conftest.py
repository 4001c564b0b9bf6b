"""Shared fixtures: a fixed config and an in-memory broker cluster."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

import pytest

from kafka_provisioner.config.models import KafkaConfig, ProvisionerConfig
from kafka_provisioner.streaming.admin import (
    BrokerConnectionError,
    TopicCreateError,
    TopicDescribeError,
    TopicDescription,
    TopicState,
)

GATEWAY = "liiklus.example:6565"
BROKER = "kafka.example:9092"


class FakeCluster:
    """Stands in for a Kafka cluster; hands out FakeAdmin connections."""

    def __init__(self, topics: set[str] | None = None) -> None:
        self.topics: set[str] = set(topics or ())
        self.topic_errors: dict[str, str] = {}
        self.connect_error: str | None = None
        self.describe_error: str | None = None
        self.create_error: str | None = None
        self.connects = 0
        self.closes = 0
        self.created: list[tuple[str, int, int, bool]] = []

    @contextmanager
    def connect(self, config: KafkaConfig) -> Iterator[FakeAdmin]:
        self.connects += 1
        if self.connect_error is not None:
            raise BrokerConnectionError(self.connect_error)
        admin = FakeAdmin(self)
        try:
            yield admin
        finally:
            admin.close()


class FakeAdmin:
    def __init__(self, cluster: FakeCluster) -> None:
        self._cluster = cluster

    def describe_topic(self, name: str) -> TopicDescription:
        if self._cluster.describe_error is not None:
            raise TopicDescribeError(self._cluster.describe_error)
        if name in self._cluster.topic_errors:
            return TopicDescription(
                name=name,
                state=TopicState.ERROR,
                error=self._cluster.topic_errors[name],
            )
        if name in self._cluster.topics:
            return TopicDescription(name=name, state=TopicState.EXISTS, partitions=1)
        return TopicDescription(name=name, state=TopicState.UNKNOWN)

    def create_topic(
        self,
        name: str,
        *,
        num_partitions: int,
        replication_factor: int,
        validate_only: bool = False,
    ) -> None:
        if self._cluster.create_error is not None:
            raise TopicCreateError(self._cluster.create_error)
        self._cluster.created.append(
            (name, num_partitions, replication_factor, validate_only)
        )
        self._cluster.topics.add(name)

    def close(self) -> None:
        self._cluster.closes += 1


@pytest.fixture
def config() -> ProvisionerConfig:
    return ProvisionerConfig(
        gateway=GATEWAY,
        kafka=KafkaConfig(bootstrap_servers=BROKER),
    )


@pytest.fixture
def cluster() -> FakeCluster:
    return FakeCluster()


@pytest.fixture
def gateway() -> str:
    return GATEWAY


@pytest.fixture
def broker() -> str:
    return BROKER


@pytest.fixture
def fake_admin(cluster: FakeCluster) -> FakeAdmin:
    return FakeAdmin(cluster)
