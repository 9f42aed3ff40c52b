"""Destinations the sync poller delivers secret values to."""

import logging
import os
import tempfile
from pathlib import Path
from typing import Union

from kv_sync.k8s.exceptions import KubernetesSecretNotFoundError
from kv_sync.k8s.models import KubernetesSecret
from kv_sync.k8s.store import SecretStore

logger = logging.getLogger(__name__)


class SyncTarget:
    """Base class for sync destinations."""

    def write(self, value: str) -> None:
        raise NotImplementedError

    def holds(self, value: str) -> bool:
        """Return True if the destination already contains ``value``."""
        raise NotImplementedError

    def describe(self) -> str:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.describe()})"


class FileTarget(SyncTarget):
    """Credential file on local disk, replaced atomically.

    The value is written to a temporary file in the same directory and moved
    into place with ``os.replace``, so readers never see a partial file.
    """

    def __init__(self, path: Union[str, Path], mode: int = 0o600):
        self.path = Path(path)
        self.mode = mode

    def write(self, value: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self.path.parent,
            prefix=f".{self.path.name}.",
            suffix=".tmp",
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
                f.write(value)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_name, self.mode)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.info(f"Wrote credential file {self.path}")

    def holds(self, value: str) -> bool:
        try:
            with open(self.path, encoding="utf-8", newline="") as f:
                return f.read() == value
        except FileNotFoundError:
            return False

    def describe(self) -> str:
        return f"file:{self.path}"


class KubernetesSecretTarget(SyncTarget):
    """One key of a Kubernetes Secret; other keys are preserved."""

    def __init__(self, store: SecretStore, namespace: str, name: str, key: str):
        self.store = store
        self.namespace = namespace
        self.name = name
        self.key = key

    def _read(self) -> KubernetesSecret:
        try:
            return self.store.read_secret(self.namespace, self.name)
        except KubernetesSecretNotFoundError:
            return KubernetesSecret(namespace=self.namespace, name=self.name)

    def write(self, value: str) -> None:
        secret = self._read()
        secret.binary_data.pop(self.key, None)
        secret.data[self.key] = value
        self.store.apply_secret(secret)

    def holds(self, value: str) -> bool:
        return self._read().get(self.key) == value

    def describe(self) -> str:
        return f"secret:{self.namespace}/{self.name}/{self.key}"
