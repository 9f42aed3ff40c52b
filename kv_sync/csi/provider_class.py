"""SecretProviderClass rendering for the Azure Key Vault CSI provider.

The Azure provider expects ``spec.parameters.objects`` to be a *string*
containing a YAML document with an ``array`` of YAML strings, one per Key
Vault object. This module builds that structure from typed models and
emits manifests as dicts or YAML.
"""

import logging
from enum import Enum
from textwrap import indent
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from kv_sync.k8s.models import KubernetesSecret
from kv_sync.keyvault.models import ServicePrincipal, is_valid_secret_name

logger = logging.getLogger(__name__)

API_VERSION = "secrets-store.csi.x-k8s.io/v1"
CSI_DRIVER = "secrets-store.csi.k8s.io"
PROVIDER = "azure"
DEFAULT_MOUNT_PATH = "/mnt/secrets-store"
NODE_PUBLISH_SECRET_NAME = "secrets-store-creds"
USED_LABEL = "secrets-store.csi.k8s.io/used"


class ObjectType(str, Enum):
    SECRET = "secret"
    KEY = "key"
    CERT = "cert"


class SecretObject(BaseModel):
    """One Key Vault object to mount (an entry of ``objects.array``)."""

    object_name: str = Field(..., description="Key Vault object name")
    object_type: ObjectType = Field(default=ObjectType.SECRET)
    object_version: str = Field(default="", description="Empty string means latest")
    object_alias: Optional[str] = Field(
        default=None,
        description="File name in the mount; defaults to object_name",
    )

    @field_validator("object_name")
    @classmethod
    def validate_object_name(cls, v: str) -> str:
        if not is_valid_secret_name(v):
            raise ValueError(f"Invalid Key Vault object name: {v!r}")
        return v

    @property
    def file_name(self) -> str:
        return self.object_alias or self.object_name

    def to_yaml(self) -> str:
        entry: dict[str, Any] = {
            "objectName": self.object_name,
            "objectType": self.object_type.value,
            "objectVersion": self.object_version,
        }
        if self.object_alias:
            entry["objectAlias"] = self.object_alias
        return yaml.safe_dump(entry, default_flow_style=False, sort_keys=False)


class SecretObjectData(BaseModel):
    object_name: str = Field(..., description="Mounted object (alias) name")
    key: str = Field(..., description="Key in the synced Kubernetes Secret")


class SecretObjectMapping(BaseModel):
    """A Kubernetes Secret the driver keeps in sync with mounted objects."""

    secret_name: str
    type: str = "Opaque"
    data: list[SecretObjectData] = Field(default_factory=list)
    labels: dict[str, str] = Field(default_factory=dict)

    def to_manifest(self) -> dict[str, Any]:
        manifest: dict[str, Any] = {
            "secretName": self.secret_name,
            "type": self.type,
            "data": [{"objectName": d.object_name, "key": d.key} for d in self.data],
        }
        if self.labels:
            manifest["labels"] = dict(self.labels)
        return manifest


class SecretProviderClass(BaseModel):
    """Typed form of the ``SecretProviderClass`` custom resource."""

    name: str
    namespace: str = "default"
    keyvault_name: str
    tenant_id: str
    objects: list[SecretObject] = Field(..., min_length=1)
    secret_objects: list[SecretObjectMapping] = Field(default_factory=list)
    use_pod_identity: bool = False
    use_vm_managed_identity: bool = False
    user_assigned_identity_id: Optional[str] = None
    cloud_name: Optional[str] = None

    @field_validator("objects")
    @classmethod
    def validate_unique_files(cls, v: list[SecretObject]) -> list[SecretObject]:
        names = [o.file_name for o in v]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Duplicate mounted object names: {duplicates}")
        return v

    def objects_parameter(self) -> str:
        """Render the ``objects`` parameter string."""
        lines = ["array:"]
        for obj in self.objects:
            lines.append("  - |")
            lines.append(indent(obj.to_yaml().rstrip("\n"), "    "))
        return "\n".join(lines) + "\n"

    def parameters(self) -> dict[str, str]:
        params = {
            "usePodIdentity": str(self.use_pod_identity).lower(),
            "useVMManagedIdentity": str(self.use_vm_managed_identity).lower(),
            "keyvaultName": self.keyvault_name,
            "tenantId": self.tenant_id,
            "objects": self.objects_parameter(),
        }
        if self.user_assigned_identity_id:
            params["userAssignedIdentityID"] = self.user_assigned_identity_id
        if self.cloud_name:
            params["cloudName"] = self.cloud_name
        return params

    def to_manifest(self) -> dict[str, Any]:
        spec: dict[str, Any] = {
            "provider": PROVIDER,
            "parameters": self.parameters(),
        }
        if self.secret_objects:
            spec["secretObjects"] = [m.to_manifest() for m in self.secret_objects]
        return {
            "apiVersion": API_VERSION,
            "kind": "SecretProviderClass",
            "metadata": {"name": self.name, "namespace": self.namespace},
            "spec": spec,
        }

    def to_yaml(self) -> str:
        return dump_manifests([self.to_manifest()])


class _LiteralStr(str):
    pass


class _ManifestDumper(yaml.SafeDumper):
    pass


def _literal_representer(dumper: yaml.SafeDumper, data: _LiteralStr):
    return dumper.represent_scalar("tag:yaml.org,2002:str", data, style="|")


_ManifestDumper.add_representer(_LiteralStr, _literal_representer)


def _literalize(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _literalize(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_literalize(v) for v in value]
    if isinstance(value, str) and "\n" in value:
        return _LiteralStr(value)
    return value


def dump_manifests(manifests: list[dict[str, Any]]) -> str:
    """Serialise manifests as a multi-document YAML string.

    Multi-line strings (such as the ``objects`` parameter) are emitted as
    literal blocks, the way they are written by hand in manifests.
    """
    return yaml.dump_all(
        [_literalize(m) for m in manifests],
        Dumper=_ManifestDumper,
        default_flow_style=False,
        sort_keys=False,
    )


# =====================================================================
# Pod wiring helpers
# =====================================================================

def csi_volume(
    name: str,
    provider_class: str,
    node_publish_secret: Optional[str] = None,
) -> dict[str, Any]:
    """Pod ``volumes`` entry mounting a SecretProviderClass."""
    csi: dict[str, Any] = {
        "driver": CSI_DRIVER,
        "readOnly": True,
        "volumeAttributes": {"secretProviderClass": provider_class},
    }
    if node_publish_secret:
        csi["nodePublishSecretRef"] = {"name": node_publish_secret}
    return {"name": name, "csi": csi}


def csi_volume_mount(name: str, mount_path: str = DEFAULT_MOUNT_PATH) -> dict[str, Any]:
    """Container ``volumeMounts`` entry for a CSI secrets volume."""
    return {"name": name, "mountPath": mount_path, "readOnly": True}


def deployment_volume_patch(
    container: str,
    provider_class: str,
    volume_name: str = "secrets-store-inline",
    mount_path: str = DEFAULT_MOUNT_PATH,
    node_publish_secret: Optional[str] = NODE_PUBLISH_SECRET_NAME,
) -> dict[str, Any]:
    """Strategic merge patch adding the CSI volume to one container."""
    return {
        "spec": {
            "template": {
                "spec": {
                    "volumes": [csi_volume(volume_name, provider_class, node_publish_secret)],
                    "containers": [
                        {
                            "name": container,
                            "volumeMounts": [csi_volume_mount(volume_name, mount_path)],
                        }
                    ],
                }
            }
        }
    }


def node_publish_secret(
    namespace: str,
    service_principal: ServicePrincipal,
    name: str = NODE_PUBLISH_SECRET_NAME,
) -> KubernetesSecret:
    """Secret holding Service Principal credentials for the CSI provider."""
    return KubernetesSecret(
        namespace=namespace,
        name=name,
        data={
            "clientid": service_principal.client_id,
            "clientsecret": service_principal.client_secret.get_secret_value(),
        },
        labels={USED_LABEL: "true"},
    )
