"""HashiCorp Vault secret provider (KV v2 engine over the HTTP API)."""
import asyncio
from typing import Any, Dict, List, Optional

import httpx

from broker.secrets.base import Secret, SecretProvider, parse_timestamp
from broker.secrets.errors import (
    AuthenticationError,
    ProviderError,
    SecretNotFoundError,
    SecretsTimeoutError,
)
from broker.logging import get_logger

logger = get_logger(__name__)

# 200 active, 429 unsealed standby, 472 DR secondary, 473 performance standby
HEALTHY_STATUS_CODES = frozenset({200, 429, 472, 473})


class VaultSecretProvider(SecretProvider):
    """Reads secrets from a Vault KV v2 mount.

    Each key maps to one Vault path; the secret value is the path's
    ``value`` field, or its first string field when ``value`` is absent.
    """

    name = "vault"

    def __init__(
        self,
        addr: str,
        token: Optional[str] = None,
        mount_path: str = "secret",
        namespace: Optional[str] = None,
        timeout: float = 30.0,
        health_timeout: float = 5.0,
    ):
        """
        Initialize the Vault client. No request is made until first use.

        Args:
            addr: Vault address, e.g. https://vault.internal:8200
            token: Vault token (X-Vault-Token), omitted when empty
            mount_path: KV v2 mount path (defaults to "secret")
            namespace: Vault Enterprise namespace (X-Vault-Namespace), omitted when empty
            timeout: HTTP timeout for reads and listings (seconds)
            health_timeout: Upper bound for healthy() (seconds)
        """
        if not addr:
            raise ValueError("vault address is required")

        self.addr = addr.rstrip("/")
        self.mount_path = (mount_path or "").strip("/") or "secret"
        self.namespace = namespace or None
        self.health_timeout = health_timeout
        self._token = token or None

        self.client = httpx.AsyncClient(base_url=self.addr, timeout=timeout)

        logger.info(
            "Vault provider initialized",
            addr=self.addr,
            mount_path=self.mount_path,
            namespace=self.namespace,
            token_configured=self._token is not None,
        )

    def _headers(self) -> Dict[str, str]:
        headers = {}
        if self._token:
            headers["X-Vault-Token"] = self._token
        if self.namespace:
            headers["X-Vault-Namespace"] = self.namespace
        return headers

    async def _get(self, path: str, params: Optional[Dict[str, str]] = None) -> httpx.Response:
        try:
            return await self.client.get(path, params=params, headers=self._headers())
        except httpx.TimeoutException as e:
            raise SecretsTimeoutError(f"vault request timed out: {path}") from e
        except httpx.HTTPError as e:
            raise ProviderError(self.name, f"request failed: {e}") from e

    def _decode(self, response: httpx.Response) -> Dict[str, Any]:
        try:
            payload = response.json()
        except ValueError as e:
            raise ProviderError(
                self.name, "failed to parse response", response.status_code, response.text
            ) from e
        if not isinstance(payload, dict) or not isinstance(payload.get("data"), dict):
            raise ProviderError(
                self.name, "unexpected response shape", response.status_code, response.text
            )
        return payload["data"]

    def _extract_value(self, key: str, fields: Dict[str, Any]) -> str:
        if "value" in fields:
            value = fields["value"]
            if not isinstance(value, str):
                raise ProviderError(self.name, f"secret {key!r} value is not a string")
            return value

        candidates = [name for name, field in fields.items() if isinstance(field, str)]
        if not candidates:
            raise ProviderError(self.name, f"secret {key!r} has no 'value' field")
        if len(candidates) > 1:
            logger.warning(
                "Vault secret has no 'value' field, using first string field",
                key=key,
                field=candidates[0],
                candidates=len(candidates),
            )
        return fields[candidates[0]]

    async def get_with_metadata(self, key: str) -> Secret:
        """Read {mount}/data/{key} and unwrap the KV v2 envelope."""
        response = await self._get(f"/v1/{self.mount_path}/data/{key}")

        if response.status_code == 404:
            raise SecretNotFoundError(key, provider=self.name)
        if response.status_code in (401, 403):
            raise AuthenticationError(self.name, f"status {response.status_code} reading {key!r}")
        if not response.is_success:
            raise ProviderError(
                self.name, f"read of {key!r} failed", response.status_code, response.text
            )

        envelope = self._decode(response)
        fields = envelope.get("data") or {}
        raw_metadata = envelope.get("metadata") or {}
        if not isinstance(fields, dict) or not isinstance(raw_metadata, dict):
            raise ProviderError(
                self.name, "unexpected response shape", response.status_code, response.text
            )

        value = self._extract_value(key, fields)
        version = raw_metadata.get("version")

        return Secret(
            key=key,
            value=value,
            version="" if version is None else str(version),
            created_at=parse_timestamp(raw_metadata.get("created_time")),
            metadata={k: v for k, v in raw_metadata.items() if isinstance(v, str)},
        )

    async def list(self) -> List[str]:
        """List keys under the mount's metadata root; an empty mount yields []."""
        response = await self._get(f"/v1/{self.mount_path}/metadata/", params={"list": "true"})

        if response.status_code == 404:
            return []
        if response.status_code in (401, 403):
            raise AuthenticationError(self.name, f"status {response.status_code} listing keys")
        if not response.is_success:
            raise ProviderError(self.name, "list failed", response.status_code, response.text)

        keys = self._decode(response).get("keys") or []
        return [k for k in keys if isinstance(k, str)]

    async def close(self) -> None:
        """Close pooled connections."""
        await self.client.aclose()

    async def healthy(self) -> bool:
        """Probe sys/health; standby and DR replicas count as usable."""
        try:
            response = await asyncio.wait_for(
                self.client.get("/v1/sys/health"), timeout=self.health_timeout
            )
        except (httpx.HTTPError, asyncio.TimeoutError) as e:
            logger.warning("Vault health check failed", addr=self.addr, error=str(e))
            return False

        return response.status_code in HEALTHY_STATUS_CODES
