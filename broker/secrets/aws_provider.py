"""AWS Secrets Manager provider over the JSON-RPC HTTP API."""
import asyncio
import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from broker.secrets.aws_signer import AWSCredentials, sign_request
from broker.secrets.base import Secret, SecretProvider, parse_timestamp
from broker.secrets.errors import (
    AuthenticationError,
    ProviderError,
    SecretNotFoundError,
    SecretsTimeoutError,
)
from broker.logging import get_logger

logger = get_logger(__name__)

CONTENT_TYPE = "application/x-amz-json-1.1"
TARGET_GET_SECRET_VALUE = "secretsmanager.GetSecretValue"
TARGET_LIST_SECRETS = "secretsmanager.ListSecrets"


def _parse_created_date(raw: Any) -> Optional[datetime]:
    # The service sends epoch seconds; RFC 3339 text is accepted as well.
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return datetime.fromtimestamp(raw, tz=timezone.utc)
    if isinstance(raw, str):
        return parse_timestamp(raw)
    return None


class AWSSecretProvider(SecretProvider):
    """
    Reads secrets from AWS Secrets Manager.

    Requests are signed with SigV4 when AWS_ACCESS_KEY_ID and
    AWS_SECRET_ACCESS_KEY are available; otherwise they are sent unsigned.
    """

    name = "aws"

    def __init__(
        self,
        region: str,
        secret_prefix: Optional[str] = None,
        credentials: Optional[AWSCredentials] = None,
        endpoint_url: Optional[str] = None,
        timeout: float = 30.0,
        health_timeout: float = 5.0,
    ):
        """
        Initialize the Secrets Manager client. No request is made until first use.

        Args:
            region: AWS region (e.g. eu-west-1)
            secret_prefix: Prefix joined to keys as '{prefix}/{key}'
            credentials: Signing credentials (defaults to the AWS_* environment variables)
            endpoint_url: Override of https://secretsmanager.{region}.amazonaws.com
            timeout: HTTP timeout for reads and listings (seconds)
            health_timeout: Upper bound for healthy() (seconds)
        """
        if not region:
            raise ValueError("AWS region is required")

        self.region = region
        self.secret_prefix = (secret_prefix or "").strip("/")
        self.credentials = credentials if credentials is not None else AWSCredentials.from_env()
        self.endpoint = (endpoint_url or f"https://secretsmanager.{region}.amazonaws.com").rstrip("/")
        self.host = httpx.URL(self.endpoint).netloc.decode("ascii")
        self.health_timeout = health_timeout

        self.client = httpx.AsyncClient(timeout=timeout)

        logger.info(
            "AWS Secrets Manager provider initialized",
            region=self.region,
            endpoint=self.endpoint,
            secret_prefix=self.secret_prefix or None,
            signed=self.credentials.can_sign,
        )

    def _secret_id(self, key: str) -> str:
        return f"{self.secret_prefix}/{key}" if self.secret_prefix else key

    def _strip_prefix(self, name: str) -> str:
        lead = f"{self.secret_prefix}/"
        if self.secret_prefix and name.startswith(lead):
            return name[len(lead):]
        return name

    async def _call(self, target: str, body: Dict[str, Any]) -> httpx.Response:
        """POST one signed JSON-RPC call; the operation is chosen by X-Amz-Target."""
        payload = json.dumps(body, separators=(",", ":")).encode("utf-8")
        headers = sign_request(
            {"Content-Type": CONTENT_TYPE, "X-Amz-Target": target},
            payload,
            credentials=self.credentials,
            region=self.region,
            host=self.host,
        )
        return await self.client.post(f"{self.endpoint}/", content=payload, headers=headers)

    async def _send(self, target: str, body: Dict[str, Any]) -> httpx.Response:
        try:
            return await self._call(target, body)
        except httpx.TimeoutException as e:
            raise SecretsTimeoutError(f"AWS request timed out: {target}") from e
        except httpx.HTTPError as e:
            raise ProviderError(self.name, f"request failed: {e}") from e

    def _raise_for_error(self, response: httpx.Response, key: Optional[str] = None) -> None:
        if response.status_code == 200:
            return

        if response.status_code == 400:
            try:
                error_type = str(response.json().get("__type", ""))
            except (ValueError, AttributeError):
                error_type = ""
            if "ResourceNotFoundException" in error_type:
                raise SecretNotFoundError(key or "", provider=self.name)
            if "AccessDeniedException" in error_type:
                raise AuthenticationError(self.name, error_type)

        raise ProviderError(self.name, "request rejected", response.status_code, response.text)

    def _decode(self, response: httpx.Response) -> Dict[str, Any]:
        try:
            payload = response.json()
        except ValueError as e:
            raise ProviderError(
                self.name, "failed to parse response", response.status_code, response.text
            ) from e
        if not isinstance(payload, dict):
            raise ProviderError(
                self.name, "unexpected response shape", response.status_code, response.text
            )
        return payload

    async def get_with_metadata(self, key: str) -> Secret:
        """GetSecretValue for the (prefixed) secret id; Secret.key stays the caller's key."""
        response = await self._send(TARGET_GET_SECRET_VALUE, {"SecretId": self._secret_id(key)})
        self._raise_for_error(response, key)
        payload = self._decode(response)

        value = payload.get("SecretString")
        binary = payload.get("SecretBinary")
        if not value and isinstance(binary, str) and binary:
            # Binary secrets arrive base64-encoded and are passed through as text.
            value = binary
        if not isinstance(value, str):
            raise ProviderError(
                self.name, f"secret {key!r} has neither SecretString nor SecretBinary"
            )

        return Secret(
            key=key,
            value=value,
            version=str(payload.get("VersionId") or ""),
            created_at=_parse_created_date(payload.get("CreatedDate")),
            metadata={
                "arn": str(payload.get("ARN") or ""),
                "name": str(payload.get("Name") or ""),
            },
        )

    async def list(self) -> List[str]:
        """ListSecrets, filtered to the prefix when one is configured."""
        body: Dict[str, Any] = {}
        if self.secret_prefix:
            body["Filters"] = [{"Key": "name", "Values": [self.secret_prefix]}]

        response = await self._send(TARGET_LIST_SECRETS, body)
        self._raise_for_error(response)

        entries = self._decode(response).get("SecretList") or []
        return [
            self._strip_prefix(entry["Name"])
            for entry in entries
            if isinstance(entry, dict) and isinstance(entry.get("Name"), str)
        ]

    async def close(self) -> None:
        """Close pooled connections."""
        await self.client.aclose()

    async def healthy(self) -> bool:
        """Bounded ListSecrets (MaxResults=1); healthy only on HTTP 200."""
        try:
            response = await asyncio.wait_for(
                self._call(TARGET_LIST_SECRETS, {"MaxResults": 1}), timeout=self.health_timeout
            )
        except (httpx.HTTPError, asyncio.TimeoutError) as e:
            logger.warning("AWS Secrets Manager health check failed", region=self.region, error=str(e))
            return False

        return response.status_code == 200
