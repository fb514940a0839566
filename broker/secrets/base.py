"""Base interface for secrets management."""
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import TypeAdapter, ValidationError

from broker.secrets.errors import NotSupportedError


class ProviderType(str, Enum):
    """Supported secret provider types."""
    ENV = "env"  # Process environment variables
    VAULT = "vault"  # HashiCorp Vault, KV v2 engine
    AWS = "aws"  # AWS Secrets Manager
    KUBERNETES = "kubernetes"  # Kubernetes Secret object


@dataclass
class Secret:
    """A resolved secret plus whatever metadata the backend reports."""
    key: str
    value: str
    version: str = ""
    created_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    metadata: Dict[str, str] = field(default_factory=dict)

    def __repr__(self) -> str:
        # Keep the value out of tracebacks and debug output.
        return (
            f"Secret(key={self.key!r}, version={self.version!r}, "
            f"created_at={self.created_at!r}, metadata={self.metadata!r})"
        )


class SecretProvider(ABC):
    """Abstract base class for secret store backends."""

    name: str = "abstract"

    async def get(self, key: str) -> str:
        """
        Retrieve a secret value by key.

        Args:
            key: Logical secret name

        Returns:
            The complete secret value

        Raises:
            SecretNotFoundError: If the secret does not exist
            AuthenticationError: If the backend rejects the credential
            SecretsTimeoutError: If the backend does not answer in time
            ProviderError: For transport or parse failures
        """
        secret = await self.get_with_metadata(key)
        return secret.value

    @abstractmethod
    async def get_with_metadata(self, key: str) -> Secret:
        """
        Retrieve a secret with version, timestamps and backend metadata.

        Args:
            key: Logical secret name

        Returns:
            Fully populated Secret
        """
        pass

    async def list(self) -> List[str]:
        """
        List available secret keys, best effort and unordered.

        Raises:
            NotSupportedError: If the backend cannot enumerate keys
        """
        raise NotSupportedError(f"{self.name} provider does not support listing")

    @abstractmethod
    async def close(self) -> None:
        """Release held connection resources. Safe to call more than once."""
        pass

    @abstractmethod
    async def healthy(self) -> bool:
        """
        Lightweight reachability probe with its own bounded timeout.

        Returns:
            True if the backend is usable, False otherwise
        """
        pass


# datetime carries microseconds at most; Vault reports nanoseconds.
_EXTRA_FRACTION = re.compile(r"(\.\d{6})\d+")
_DATETIME = TypeAdapter(datetime)


def parse_timestamp(raw: Optional[str]) -> Optional[datetime]:
    """
    Parse an RFC 3339 timestamp into UTC, tolerating nanosecond fractions.

    Returns None for empty or unparseable input; timestamps are best effort.
    """
    if not raw:
        return None

    text = _EXTRA_FRACTION.sub(r"\1", raw.strip(), count=1)
    try:
        parsed = _DATETIME.validate_python(text)
    except ValidationError:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
