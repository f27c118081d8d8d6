"""Unit tests for connectors and credential resolution."""

from __future__ import annotations

import pytest

from license_fulfillment.engine.connectors import (
    Connector,
    ConnectorRegistry,
    EnvironmentCredentialProvider,
    StaticCredentialProvider,
)
from license_fulfillment.engine.errors import (
    CredentialNotFound,
    EndpointNotAllowed,
    InvalidDefinition,
    UnknownConnector,
)


def test_url_for_joins_relative_paths() -> None:
    connector = Connector(name="paddle", base_url="https://paddle.test/")

    assert connector.url_for("customers/abc") == "https://paddle.test/customers/abc"
    assert connector.url_for("/customers/abc") == "https://paddle.test/customers/abc"
    assert connector.url_for("") == "https://paddle.test/"
    assert connector.url_for("https://paddle.test/customers/abc") == "https://paddle.test/customers/abc"


@pytest.mark.parametrize(
    "url",
    ["https://other.test/x", "https://paddle.test.evil.test/x", "http://paddle.test/x"],
)
def test_url_for_rejects_absolute_urls_outside_the_base(url: str) -> None:
    connector = Connector(name="paddle", base_url="https://paddle.test/")

    with pytest.raises(EndpointNotAllowed) as exc:
        connector.url_for(url)
    assert exc.value.kind == "EndpointNotAllowed"
    assert exc.value.url == url


def test_registry_resolves_registered_connectors(registry: ConnectorRegistry) -> None:
    assert registry.resolve("keygen").credential_ref == "KeygenSecret"
    assert "paddle" in registry
    assert registry.names() == ["keygen", "paddle"]


def test_registry_unknown_connector(registry: ConnectorRegistry) -> None:
    with pytest.raises(UnknownConnector) as exc:
        registry.resolve("stripe")
    assert exc.value.name == "stripe"
    assert exc.value.kind == "UnknownConnector"


def test_registry_rejects_duplicate_names(registry: ConnectorRegistry) -> None:
    with pytest.raises(InvalidDefinition):
        registry.register(Connector(name="keygen", base_url="https://elsewhere.test"))


def test_credential_header_uses_connector_auth_header() -> None:
    registry = ConnectorRegistry(
        StaticCredentialProvider({"Key": "secret-value"}),
        [
            Connector(name="a", base_url="https://a.test", credential_ref="Key"),
            Connector(name="b", base_url="https://b.test", credential_ref="Key", auth_header="X-Api-Key"),
            Connector(name="c", base_url="https://c.test"),
        ],
    )

    assert registry.credential_header(registry.resolve("a")) == {"Authorization": "secret-value"}
    assert registry.credential_header(registry.resolve("b")) == {"X-Api-Key": "secret-value"}
    assert registry.credential_header(registry.resolve("c")) == {}


def test_static_provider_missing_reference() -> None:
    with pytest.raises(CredentialNotFound) as exc:
        StaticCredentialProvider({}).get("KeygenSecret")
    assert exc.value.reference == "KeygenSecret"


def test_environment_provider_reads_on_every_call(monkeypatch: pytest.MonkeyPatch) -> None:
    provider = EnvironmentCredentialProvider("FULFILLMENT_SECRET_")
    assert provider.variable_for("KeygenSecret") == "FULFILLMENT_SECRET_KEYGENSECRET"

    monkeypatch.setenv("FULFILLMENT_SECRET_KEYGENSECRET", "Bearer one")
    assert provider.get("KeygenSecret") == "Bearer one"

    monkeypatch.setenv("FULFILLMENT_SECRET_KEYGENSECRET", "Bearer two")
    assert provider.get("KeygenSecret") == "Bearer two"


def test_environment_provider_rejects_missing_or_blank(monkeypatch: pytest.MonkeyPatch) -> None:
    provider = EnvironmentCredentialProvider("FULFILLMENT_SECRET_")
    monkeypatch.delenv("FULFILLMENT_SECRET_PADDLESECRET", raising=False)
    with pytest.raises(CredentialNotFound):
        provider.get("PaddleSecret")

    monkeypatch.setenv("FULFILLMENT_SECRET_PADDLESECRET", "   ")
    with pytest.raises(CredentialNotFound):
        provider.get("PaddleSecret")
