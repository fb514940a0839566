"""Environment variable secret provider."""
import os
from typing import List, Mapping, Optional

from broker.secrets.base import Secret, SecretProvider
from broker.secrets.errors import SecretNotFoundError
from broker.logging import get_logger

logger = get_logger(__name__)

DEFAULT_PREFIX = "BROKER_SECRET_"


def normalize_key(key: str) -> str:
    """
    Convert a secret key to environment variable form.

    'database.password' -> 'DATABASE_PASSWORD'
    'path/to/secret'    -> 'PATH_TO_SECRET'
    """
    return key.upper().replace(".", "_").replace("-", "_").replace("/", "_")


class EnvSecretProvider(SecretProvider):
    """Reads secrets from environment variables; needs no external service."""

    name = "env"

    def __init__(self, prefix: str = DEFAULT_PREFIX, environ: Optional[Mapping[str, str]] = None):
        """
        Initialize the environment provider.

        Args:
            prefix: Prefix tried before the bare variable name
            environ: Lookup table to read from (defaults to os.environ)
        """
        self.prefix = prefix
        self._environ = os.environ if environ is None else environ

    def _lookup(self, name: str) -> Optional[str]:
        # Empty values count as unset.
        return self._environ.get(name) or None

    async def get_with_metadata(self, key: str) -> Secret:
        """
        Resolve a key against the environment.

        Tries, in order: {prefix}{NORMALIZED}, {NORMALIZED}, then the key as given.
        """
        env_key = normalize_key(key)
        for candidate in (f"{self.prefix}{env_key}", env_key, key):
            value = self._lookup(candidate)
            if value is not None:
                logger.debug("Resolved secret from environment", key=key, variable=candidate)
                return Secret(
                    key=key,
                    value=value,
                    version="env",
                    metadata={"source": "environment"},
                )

        raise SecretNotFoundError(key, provider=self.name)

    async def list(self) -> List[str]:
        """Variables carrying the prefix, with the prefix stripped."""
        return [
            name[len(self.prefix):]
            for name in self._environ
            if name.startswith(self.prefix)
        ]

    async def close(self) -> None:
        """Nothing to release."""
        return None

    async def healthy(self) -> bool:
        """The environment is always readable."""
        return True
