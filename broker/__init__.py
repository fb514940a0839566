"""Secrets broker: one contract over env, Vault, AWS and Kubernetes secret stores."""

__version__ = "0.1.0"
