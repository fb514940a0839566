"""Secrets management abstraction layer."""
from .base import ProviderType, Secret, SecretProvider
from .config import SecretsConfig, load_config
from .errors import (
    AuthenticationError,
    InvalidConfigError,
    NotConfiguredError,
    NotSupportedError,
    ProviderError,
    SecretNotFoundError,
    SecretsError,
    SecretsTimeoutError,
)
from .env_provider import EnvSecretProvider
from .vault_provider import VaultSecretProvider
from .aws_provider import AWSSecretProvider
from .kubernetes_provider import KubernetesSecretProvider
from .manager import SecretsManager, build_provider, create_manager

__all__ = [
    "ProviderType",
    "Secret",
    "SecretProvider",
    "SecretsConfig",
    "load_config",
    "SecretsError",
    "SecretNotFoundError",
    "NotSupportedError",
    "NotConfiguredError",
    "InvalidConfigError",
    "AuthenticationError",
    "SecretsTimeoutError",
    "ProviderError",
    "EnvSecretProvider",
    "VaultSecretProvider",
    "AWSSecretProvider",
    "KubernetesSecretProvider",
    "SecretsManager",
    "build_provider",
    "create_manager",
]
