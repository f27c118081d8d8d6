"""Named external-call configurations and credential resolution."""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Protocol

from .errors import CredentialNotFound, EndpointNotAllowed, InvalidDefinition, UnknownConnector

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Connector:
    """Where an HTTP Task sends its requests and how it authenticates.

    ``credential_ref`` is an opaque handle; the secret itself is looked up at
    call time and never stored on the connector.
    """

    name: str
    base_url: str
    credential_ref: str | None = None
    auth_header: str = "Authorization"
    headers: Mapping[str, str] = field(default_factory=dict)

    def url_for(self, path: str) -> str:
        """Join ``path`` onto the base URL.

        Absolute URLs are accepted only when they stay under the base URL, so a
        rendered endpoint can never carry this connector's credential elsewhere.
        """

        base = self.base_url.rstrip("/")
        if "://" in path:
            if path.rstrip("/") == base or path.startswith(f"{base}/"):
                return path
            raise EndpointNotAllowed(self.name, path)
        if not path:
            return self.base_url
        return f"{base}/{path.lstrip('/')}"


class CredentialProvider(Protocol):
    """Resolves a named credential reference to its secret value."""

    def get(self, reference: str) -> str: ...


class StaticCredentialProvider:
    """Serves credentials from an in-memory mapping."""

    def __init__(self, secrets: Mapping[str, str]) -> None:
        self._secrets = dict(secrets)

    def get(self, reference: str) -> str:
        try:
            return self._secrets[reference]
        except KeyError:
            raise CredentialNotFound(reference) from None


class EnvironmentCredentialProvider:
    """Reads ``<prefix><REFERENCE>`` from the process environment on every call.

    ``KeygenSecret`` with the default prefix resolves ``FULFILLMENT_SECRET_KEYGENSECRET``.
    """

    def __init__(self, prefix: str = "FULFILLMENT_SECRET_") -> None:
        self.prefix = prefix

    def variable_for(self, reference: str) -> str:
        return f"{self.prefix}{reference}".upper()

    def get(self, reference: str) -> str:
        value = os.environ.get(self.variable_for(reference), "")
        if not value.strip():
            raise CredentialNotFound(reference)
        return value


class ConnectorRegistry:
    """Lookup table of connectors, read-only once execution starts."""

    def __init__(
        self,
        credentials: CredentialProvider,
        connectors: Iterable[Connector] = (),
    ) -> None:
        self._credentials = credentials
        self._connectors: dict[str, Connector] = {}
        self._lock = threading.Lock()
        for connector in connectors:
            self.register(connector)

    def register(self, connector: Connector) -> None:
        with self._lock:
            if connector.name in self._connectors:
                raise InvalidDefinition(f"Connector {connector.name!r} is already registered")
            self._connectors[connector.name] = connector
        logger.debug(
            "Connector registered",
            extra={"connector": connector.name, "base_url": connector.base_url},
        )

    def resolve(self, name: str) -> Connector:
        connector = self._connectors.get(name)
        if connector is None:
            raise UnknownConnector(name)
        return connector

    def names(self) -> list[str]:
        return sorted(self._connectors)

    def __contains__(self, name: object) -> bool:
        return name in self._connectors

    def credential_header(self, connector: Connector) -> dict[str, str]:
        """The auth header for one call, resolved fresh from the credential provider."""

        if not connector.credential_ref:
            return {}
        return {connector.auth_header: self._credentials.get(connector.credential_ref)}
