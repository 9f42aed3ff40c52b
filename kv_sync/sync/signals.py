"""Notifications fired after secrets changed."""

import logging
from typing import Callable

from kv_sync.k8s.store import SecretStore

logger = logging.getLogger(__name__)


class Signal:
    """Base class for dependents notified after a poll cycle with changes."""

    def fire(self, changed: list[str]) -> None:
        raise NotImplementedError

    def describe(self) -> str:
        return type(self).__name__


class DeploymentRestartSignal(Signal):
    """Roll a Deployment so its pods re-read mounted credentials."""

    def __init__(self, store: SecretStore, namespace: str, name: str):
        self.store = store
        self.namespace = namespace
        self.name = name

    def fire(self, changed: list[str]) -> None:
        logger.info(
            f"Restarting deployment {self.namespace}/{self.name} "
            f"after change of {', '.join(changed)}"
        )
        self.store.restart_deployment(self.namespace, self.name)

    def describe(self) -> str:
        return f"deployment:{self.namespace}/{self.name}"


class CallbackSignal(Signal):
    """Call a Python function with the list of changed secret names."""

    def __init__(self, callback: Callable[[list[str]], None], name: str = ""):
        self.callback = callback
        self.name = name or getattr(callback, "__name__", "callback")

    def fire(self, changed: list[str]) -> None:
        self.callback(changed)

    def describe(self) -> str:
        return f"callback:{self.name}"
