"""Secrets manager facade and provider factory."""
from typing import List, Optional

from broker.secrets.aws_provider import AWSSecretProvider
from broker.secrets.base import ProviderType, Secret, SecretProvider
from broker.secrets.config import SecretsConfig, load_config
from broker.secrets.env_provider import EnvSecretProvider
from broker.secrets.errors import InvalidConfigError, NotConfiguredError, SecretsError
from broker.secrets.kubernetes_provider import KubernetesSecretProvider
from broker.secrets.vault_provider import VaultSecretProvider
from broker.logging import get_logger

logger = get_logger(__name__)


class SecretsManager:
    """
    Owns one provider for its lifetime and delegates to it unchanged.

    Usage:
        async with create_manager() as secrets:
            password = await secrets.get("database.password")
    """

    def __init__(self, provider: Optional[SecretProvider] = None, config: Optional[SecretsConfig] = None):
        self._provider = provider
        self._config = config

    @property
    def provider(self) -> Optional[SecretProvider]:
        return self._provider

    @property
    def config(self) -> Optional[SecretsConfig]:
        return self._config

    @property
    def provider_name(self) -> str:
        """Name of the active provider, for diagnostics."""
        return self._active().name

    def _active(self) -> SecretProvider:
        if self._provider is None:
            raise NotConfiguredError("secrets manager has no provider")
        return self._provider

    async def get(self, key: str) -> str:
        return await self._active().get(key)

    async def get_with_metadata(self, key: str) -> Secret:
        return await self._active().get_with_metadata(key)

    async def get_or_default(self, key: str, default: str) -> str:
        """Return the secret, or default on any lookup failure."""
        try:
            return await self._active().get(key)
        except Exception as e:
            logger.debug("Secret unavailable, using default", key=key, error=str(e))
            return default

    async def must_get(self, key: str) -> str:
        """
        Return a required secret or abort the process.

        For configuration resolved once at startup only; never call this on a
        request path. Raises SystemExit, which ordinary exception handlers
        do not intercept.
        """
        try:
            return await self._active().get(key)
        except SecretsError as e:
            logger.critical("Required secret could not be resolved", key=key, error=str(e))
            raise SystemExit(f"required secret {key!r} not found: {e}") from e

    async def list(self) -> List[str]:
        return await self._active().list()

    async def healthy(self) -> bool:
        return await self._active().healthy()

    async def close(self) -> None:
        """Release the provider's resources; a no-op without a provider."""
        if self._provider is not None:
            await self._provider.close()

    async def __aenter__(self) -> "SecretsManager":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


def build_provider(config: SecretsConfig) -> SecretProvider:
    """Construct the provider selected by an already validated config."""
    provider = config.provider_type

    if provider == ProviderType.ENV:
        return EnvSecretProvider(prefix=config.env_prefix)

    if provider == ProviderType.VAULT:
        return VaultSecretProvider(
            addr=config.vault_addr,
            token=config.vault_token_value(),
            mount_path=config.vault_mount_path,
            namespace=config.vault_namespace,
            timeout=config.request_timeout,
            health_timeout=config.health_timeout,
        )

    if provider == ProviderType.AWS:
        return AWSSecretProvider(
            region=config.aws_region,
            secret_prefix=config.aws_secret_prefix,
            endpoint_url=config.aws_endpoint_url,
            timeout=config.request_timeout,
            health_timeout=config.health_timeout,
        )

    if provider == ProviderType.KUBERNETES:
        return KubernetesSecretProvider(
            secret_name=config.k8s_secret_name,
            namespace=config.k8s_namespace,
            in_cluster=config.k8s_in_cluster,
            kubeconfig=config.k8s_kubeconfig,
            health_timeout=config.health_timeout,
        )

    raise InvalidConfigError(f"unknown provider: {config.provider}")


def create_manager(config: Optional[SecretsConfig] = None) -> SecretsManager:
    """
    Validate the configuration and wrap the selected provider in a manager.

    Args:
        config: Secrets configuration (defaults to load_config())

    Raises:
        InvalidConfigError: If validation fails; nothing is constructed
        NotConfiguredError: If the provider cannot be initialized
    """
    config = config if config is not None else load_config()
    config.validate_config()

    try:
        provider = build_provider(config)
    except NotConfiguredError:
        raise
    except (ValueError, OSError) as e:
        raise NotConfiguredError(f"failed to initialize {config.provider} provider: {e}") from e

    logger.info("Secrets manager initialized", provider=provider.name)
    return SecretsManager(provider, config)
