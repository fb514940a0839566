"""Process-wide secrets manager and env-first secret resolution."""
from typing import Optional
from broker.secrets.manager import SecretsManager, create_manager
from broker.logging import get_logger

logger = get_logger(__name__)

# Global secrets manager instance (lazy initialization)
_secrets_manager: Optional[SecretsManager] = None


def get_secrets_manager() -> SecretsManager:
    """
    Get or initialize the process-wide secrets manager.

    Built on first use from load_config(); configuration errors propagate so
    that a misconfigured process fails at startup.

    Returns:
        SecretsManager instance
    """
    global _secrets_manager

    if _secrets_manager is None:
        _secrets_manager = create_manager()
    return _secrets_manager


async def reset_secrets_manager() -> None:
    """Close and forget the process-wide manager (next access rebuilds it)."""
    global _secrets_manager

    manager, _secrets_manager = _secrets_manager, None
    if manager is not None:
        await manager.close()


async def resolve_secret(
    env_value: Optional[str],
    key: str,
    default: Optional[str] = None
) -> Optional[str]:
    """
    Resolve a secret value from an explicit value or the secrets manager.

    Priority:
    1. env_value (if provided and not blank)
    2. Secrets manager
    3. default

    Args:
        env_value: Value already read from configuration (may be None or empty)
        key: Secret key for the secrets manager
        default: Returned when neither source has a value

    Returns:
        Secret value or default
    """
    # If env value exists and is not empty, use it
    if env_value and env_value.strip():
        return env_value.strip()

    manager = get_secrets_manager()
    try:
        return await manager.get(key)
    except Exception as e:
        logger.warning(
            "Failed to resolve secret from secrets manager",
            key=key,
            provider=manager.provider_name,
            error=str(e)
        )
        return default
