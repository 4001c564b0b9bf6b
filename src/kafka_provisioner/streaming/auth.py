"""Kafka authentication config builder for SASL / SSL secured brokers."""

from __future__ import annotations

from typing import Any

from kafka_provisioner.config.models import KafkaAuthMechanism, KafkaConfig

_SASL_MECHANISMS = {
    KafkaAuthMechanism.SASL_PLAIN: "PLAIN",
    KafkaAuthMechanism.SASL_SCRAM_256: "SCRAM-SHA-256",
    KafkaAuthMechanism.SASL_SCRAM_512: "SCRAM-SHA-512",
}


def build_kafka_auth_config(config: KafkaConfig) -> dict[str, Any]:
    """Build confluent_kafka config dict entries for authentication.

    Returns a dict of config keys to merge into the AdminClient constructor
    arguments.  SSL settings apply with or without SASL, so an SSL-only
    broker needs just ``security_protocol: SSL`` and the certificate paths.
    """
    auth: dict[str, Any] = {}
    if (
        config.auth_mechanism != KafkaAuthMechanism.NONE
        or config.security_protocol.upper() != "PLAINTEXT"
    ):
        auth["security.protocol"] = config.security_protocol

    # SSL certificate paths
    if config.ssl_ca_location:
        auth["ssl.ca.location"] = config.ssl_ca_location
    if config.ssl_certificate_location:
        auth["ssl.certificate.location"] = config.ssl_certificate_location
    if config.ssl_key_location:
        auth["ssl.key.location"] = config.ssl_key_location

    if config.auth_mechanism == KafkaAuthMechanism.NONE:
        return auth

    auth["sasl.mechanism"] = _SASL_MECHANISMS[config.auth_mechanism]
    auth["sasl.username"] = config.sasl_username
    pw = config.sasl_password.get_secret_value() if config.sasl_password else ""
    auth["sasl.password"] = pw
    return auth
