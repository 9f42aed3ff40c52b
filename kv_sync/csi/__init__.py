"""Secrets Store CSI Driver manifests for the Azure Key Vault provider."""

from kv_sync.csi.provider_class import (
    API_VERSION,
    CSI_DRIVER,
    DEFAULT_MOUNT_PATH,
    NODE_PUBLISH_SECRET_NAME,
    ObjectType,
    SecretObject,
    SecretObjectData,
    SecretObjectMapping,
    SecretProviderClass,
    csi_volume,
    csi_volume_mount,
    deployment_volume_patch,
    dump_manifests,
    node_publish_secret,
)

__all__ = [
    "API_VERSION",
    "CSI_DRIVER",
    "DEFAULT_MOUNT_PATH",
    "NODE_PUBLISH_SECRET_NAME",
    "ObjectType",
    "SecretObject",
    "SecretObjectData",
    "SecretObjectMapping",
    "SecretProviderClass",
    "csi_volume",
    "csi_volume_mount",
    "deployment_volume_patch",
    "dump_manifests",
    "node_publish_secret",
]
