"""Migrate Kubernetes Secrets into Azure Key Vault."""

from kv_sync.migration.migrate import (
    MigrationConfig,
    MigrationOrchestrator,
    MigrationPhase,
    MigrationResult,
)
from kv_sync.migration.write_to_keyvault import (
    KeyVaultSecretWriter,
    SecretToWrite,
    WriteResult,
    build_write_plan,
    keyvault_name_for,
    plan_secret_names,
)

__all__ = [
    "MigrationConfig",
    "MigrationOrchestrator",
    "MigrationPhase",
    "MigrationResult",
    "KeyVaultSecretWriter",
    "SecretToWrite",
    "WriteResult",
    "build_write_plan",
    "keyvault_name_for",
    "plan_secret_names",
]
