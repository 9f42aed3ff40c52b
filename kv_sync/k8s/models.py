"""Models for Kubernetes Secret objects."""

import base64
import re
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

OPAQUE = "Opaque"

# DNS subdomain: lowercase alphanumerics, '-' and '.'
NAME_PATTERN = re.compile(r"^[a-z0-9]([-a-z0-9.]*[a-z0-9])?$")


def b64encode(value: str) -> str:
    return base64.b64encode(value.encode("utf-8")).decode("ascii")


def b64decode(value: str) -> str:
    return base64.b64decode(value).decode("utf-8")


class KubernetesSecret(BaseModel):
    """A Kubernetes Secret with decoded values.

    ``data`` always holds plain strings; base64 only exists on the wire
    (see :meth:`from_api` and :meth:`to_body`). Values that are not valid
    UTF-8 are kept base64-encoded in ``binary_data`` and written back as-is.
    """

    namespace: str = Field(default="default", min_length=1)
    name: str = Field(..., min_length=1, examples=["redis-secret"])
    data: dict[str, str] = Field(default_factory=dict, repr=False)
    binary_data: dict[str, str] = Field(default_factory=dict, repr=False)
    type: str = Field(default=OPAQUE)
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if len(v) > 253 or not NAME_PATTERN.match(v):
            raise ValueError(f"Invalid Kubernetes object name: {v!r}")
        return v

    @classmethod
    def from_api(cls, obj: Any) -> "KubernetesSecret":
        """Build from a ``V1Secret`` returned by the Kubernetes client."""
        meta = obj.metadata
        data: dict[str, str] = {}
        binary_data: dict[str, str] = {}
        for key, value in (obj.data or {}).items():
            try:
                data[key] = b64decode(value)
            except UnicodeDecodeError:
                binary_data[key] = value
        # stringData is write-only on the server but may appear on local objects
        data.update(getattr(obj, "string_data", None) or {})
        return cls(
            namespace=meta.namespace or "default",
            name=meta.name,
            data=data,
            binary_data=binary_data,
            type=obj.type or OPAQUE,
            labels=dict(meta.labels or {}),
            annotations=dict(meta.annotations or {}),
        )

    def to_body(self) -> dict[str, Any]:
        """Return the request body for create/replace calls."""
        encoded = dict(self.binary_data)
        encoded.update((key, b64encode(value)) for key, value in self.data.items())
        return {
            "apiVersion": "v1",
            "kind": "Secret",
            "metadata": {
                "name": self.name,
                "namespace": self.namespace,
                "labels": dict(self.labels),
                "annotations": dict(self.annotations),
            },
            "type": self.type,
            "data": encoded,
        }

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self.data.get(key, default)
