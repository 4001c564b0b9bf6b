"""Pydantic configuration models for the topic provisioner."""

from __future__ import annotations

from enum import StrEnum
from typing import Self

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    field_validator,
    model_validator,
)


class KafkaAuthMechanism(StrEnum):
    """Kafka SASL authentication mechanisms."""

    NONE = "none"
    SASL_PLAIN = "sasl_plain"
    SASL_SCRAM_256 = "sasl_scram_256"
    SASL_SCRAM_512 = "sasl_scram_512"


class KafkaConfig(BaseModel):
    """Broker connection settings for the cluster-admin client."""

    model_config = ConfigDict(frozen=True)

    bootstrap_servers: str
    client_id: str = "kafka-provisioner"
    # Oldest broker protocol the admin client assumes when version probing fails
    broker_version_fallback: str = "0.11.0"
    connect_timeout_seconds: float = Field(default=10.0, gt=0)
    request_timeout_seconds: float = Field(default=30.0, gt=0)
    # Auth / security
    security_protocol: str = "PLAINTEXT"
    auth_mechanism: KafkaAuthMechanism = KafkaAuthMechanism.NONE
    sasl_username: str | None = None
    sasl_password: SecretStr | None = None
    ssl_ca_location: str | None = None
    ssl_certificate_location: str | None = None
    ssl_key_location: str | None = None

    @field_validator("bootstrap_servers")
    @classmethod
    def require_bootstrap_servers(cls, v: str) -> str:
        if not v.strip():
            msg = "bootstrap_servers should contain the host and port of a Kafka broker"
            raise ValueError(msg)
        return v

    @model_validator(mode="after")
    def check_auth_requirements(self) -> Self:
        """Validate that SASL credentials are present when SASL is selected."""
        mech = self.auth_mechanism
        if mech != KafkaAuthMechanism.NONE and (
            not self.sasl_username or not self.sasl_password
        ):
            msg = (
                "sasl_username and sasl_password are required "
                f"when auth_mechanism is '{mech.value}'"
            )
            raise ValueError(msg)
        return self


class ServerConfig(BaseModel):
    """HTTP listener settings."""

    model_config = ConfigDict(frozen=True)

    host: str = "0.0.0.0"  # noqa: S104
    port: int = Field(default=8080, ge=0, le=65535)
    read_timeout_seconds: float = Field(default=5.0, gt=0)


class ProvisionerConfig(BaseModel):
    """Top-level settings, populated once at startup and never mutated."""

    model_config = ConfigDict(frozen=True)

    # Address handed back to callers alongside the provisioned topic
    gateway: str
    kafka: KafkaConfig
    server: ServerConfig = Field(default_factory=ServerConfig)
    log_level: str = "info"

    @field_validator("gateway")
    @classmethod
    def require_gateway(cls, v: str) -> str:
        if not v.strip():
            msg = "gateway should contain the host and port of a gateway endpoint"
            raise ValueError(msg)
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.lower()
        if level not in {"debug", "info", "warning", "error", "critical"}:
            msg = f"Unknown log level '{v}'"
            raise ValueError(msg)
        return level
