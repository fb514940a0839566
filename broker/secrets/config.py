"""Secrets backend selection, loaded with pydantic-settings."""
from typing import Optional
from pydantic import AliasChoices, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from broker.secrets.base import ProviderType
from broker.secrets.errors import InvalidConfigError


class SecretsConfig(BaseSettings):
    """
    Which secret store to use and how to reach it.

    Configuration priority (highest to lowest):
    1. Keyword arguments
    2. Runtime environment variables (project-specific names before generic ones)
    3. .env file
    4. Defaults in this class

    Construction never fails on an unknown provider; call validate_config()
    before building anything from it.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_ignore_empty=True,
        populate_by_name=True,
        extra="ignore"
    )

    # ============================================
    # PROVIDER SELECTION
    # ============================================
    provider: str = Field(
        default=ProviderType.ENV.value,
        validation_alias=AliasChoices("BROKER_SECRETS_PROVIDER"),
        description="Secret store to use: 'env', 'vault', 'aws' or 'kubernetes'"
    )
    env_prefix: str = Field(
        default="BROKER_SECRET_",
        validation_alias=AliasChoices("BROKER_SECRETS_ENV_PREFIX"),
        description="Prefix tried first by the env provider (e.g. BROKER_SECRET_DATABASE_PASSWORD)"
    )

    # ============================================
    # VAULT
    # ============================================
    vault_addr: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("BROKER_VAULT_ADDR", "VAULT_ADDR"),
        description="[REQUIRED for vault] Vault server address (e.g. https://vault.internal:8200)"
    )
    vault_token: Optional[SecretStr] = Field(
        default=None,
        validation_alias=AliasChoices("BROKER_VAULT_TOKEN", "VAULT_TOKEN"),
        description="[OPTIONAL] Vault token, sent as X-Vault-Token when set"
    )
    vault_mount_path: str = Field(
        default="secret",
        validation_alias=AliasChoices("BROKER_VAULT_MOUNT_PATH"),
        description="KV v2 mount path"
    )
    vault_namespace: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("BROKER_VAULT_NAMESPACE", "VAULT_NAMESPACE"),
        description="[OPTIONAL] Vault Enterprise namespace"
    )

    # ============================================
    # AWS SECRETS MANAGER
    # ============================================
    aws_region: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("BROKER_AWS_REGION", "AWS_REGION", "AWS_DEFAULT_REGION"),
        description="[REQUIRED for aws] AWS region of the Secrets Manager endpoint"
    )
    aws_secret_prefix: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("BROKER_AWS_SECRET_PREFIX"),
        description="[OPTIONAL] Prefix joined to keys as '{prefix}/{key}'"
    )
    aws_endpoint_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("BROKER_AWS_ENDPOINT_URL"),
        description="[OPTIONAL] Override of the regional endpoint (e.g. LocalStack)"
    )

    # ============================================
    # KUBERNETES
    # ============================================
    k8s_namespace: str = Field(
        default="default",
        validation_alias=AliasChoices("BROKER_K8S_SECRET_NAMESPACE", "BROKER_NAMESPACE"),
        description="Namespace holding the Secret object"
    )
    k8s_secret_name: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("BROKER_K8S_SECRET_NAME"),
        description="[REQUIRED for kubernetes] Name of the Secret object"
    )
    k8s_kubeconfig: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("KUBECONFIG"),
        description="[OPTIONAL] kubeconfig path; when set, in-cluster config is not used"
    )
    k8s_in_cluster: bool = Field(
        default=True,
        validation_alias=AliasChoices("BROKER_K8S_IN_CLUSTER"),
        description="Use the pod's service account before falling back to kubeconfig"
    )

    # ============================================
    # TIMEOUTS
    # ============================================
    request_timeout: float = Field(
        default=30.0,
        validation_alias=AliasChoices("BROKER_SECRETS_REQUEST_TIMEOUT"),
        description="HTTP timeout for secret reads and listings (seconds)"
    )
    health_timeout: float = Field(
        default=5.0,
        validation_alias=AliasChoices("BROKER_SECRETS_HEALTH_TIMEOUT"),
        description="Upper bound for a health probe (seconds)"
    )

    @field_validator("provider", mode="before")
    @classmethod
    def _normalize_provider(cls, value):
        if isinstance(value, ProviderType):
            return value.value
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @model_validator(mode="after")
    def _kubeconfig_disables_in_cluster(self):
        if self.k8s_kubeconfig:
            self.k8s_in_cluster = False
        return self

    @property
    def provider_type(self) -> ProviderType:
        """The selected provider; raises InvalidConfigError for unknown names."""
        try:
            return ProviderType(self.provider)
        except ValueError:
            valid = ", ".join(p.value for p in ProviderType)
            raise InvalidConfigError(
                f"unknown provider type: {self.provider!r} (valid: {valid})"
            ) from None

    def validate_config(self) -> None:
        """
        Check that the selected provider has its minimum configuration.

        Pure: looks only at this object, never at the network.

        Raises:
            InvalidConfigError: If the configuration cannot work
        """
        provider = self.provider_type

        if provider == ProviderType.ENV:
            return

        if provider == ProviderType.VAULT and not self.vault_addr:
            raise InvalidConfigError(
                "BROKER_VAULT_ADDR or VAULT_ADDR is required for vault provider"
            )

        # Credentials come from the environment or an attached role, so only the region is required.
        if provider == ProviderType.AWS and not self.aws_region:
            raise InvalidConfigError(
                "BROKER_AWS_REGION or AWS_REGION is required for aws provider"
            )

        if provider == ProviderType.KUBERNETES and not self.k8s_secret_name:
            raise InvalidConfigError(
                "BROKER_K8S_SECRET_NAME is required for kubernetes provider"
            )

    def vault_token_value(self) -> Optional[str]:
        """Plain Vault token, or None when unset or blank."""
        if self.vault_token is None:
            return None
        token = self.vault_token.get_secret_value().strip()
        return token or None


def load_config(**overrides) -> SecretsConfig:
    """
    Build a SecretsConfig from defaults layered with the environment.

    Args:
        **overrides: Field values that win over every other source
    """
    return SecretsConfig(**overrides)
