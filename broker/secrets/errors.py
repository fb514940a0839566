"""Error taxonomy shared by every secret provider.

Callers branch on the exception class, never on message text. Every
backend maps its native failures onto these classes:

- SecretNotFoundError: the key (or the object holding it) does not exist
- AuthenticationError: the backend rejected the credential
- SecretsTimeoutError: the HTTP client gave up waiting
- NotSupportedError: the provider cannot perform the operation
- NotConfiguredError / InvalidConfigError: the provider cannot be built
- ProviderError: anything else, with the raw response kept for diagnostics
"""
from typing import Optional


class SecretsError(Exception):
    """Base class for all secrets-layer failures."""


class SecretNotFoundError(SecretsError):
    """The requested secret does not exist in the backend."""

    def __init__(self, key: str, provider: Optional[str] = None):
        self.key = key
        self.provider = provider
        where = f" in {provider}" if provider else ""
        super().__init__(f"secret not found{where}: {key}")


class NotSupportedError(SecretsError):
    """The operation is not supported by this provider."""


class NotConfiguredError(SecretsError):
    """The provider is missing configuration or could not be initialized."""


class InvalidConfigError(NotConfiguredError):
    """SecretsConfig failed validation."""


class AuthenticationError(SecretsError):
    """The backend rejected the configured credentials."""

    def __init__(self, provider: str, detail: str = ""):
        self.provider = provider
        message = f"{provider}: authentication failed"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class SecretsTimeoutError(SecretsError):
    """The backend did not answer in time."""


class ProviderError(SecretsError):
    """Unclassified backend failure (transport, unexpected status, bad payload).

    Attributes:
        provider: Provider name the failure came from
        status_code: HTTP status when the backend answered
        body: Raw response body, preserved for diagnostics
    """

    def __init__(
        self,
        provider: str,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ):
        self.provider = provider
        self.status_code = status_code
        self.body = body
        text = f"{provider}: {message}"
        if status_code is not None:
            text = f"{text} (status {status_code})"
        if body:
            text = f"{text}: {body}"
        super().__init__(text)
