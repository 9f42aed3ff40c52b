"""Command line entry point for the secret sync poller.

Usage:
    kv-sync --vault-name redis-kv-demo \\
        --secret redis-password=/etc/redis/password --once

    kv-sync --vault-name redis-kv-demo \\
        --k8s-secret redis-password=default/redis-auth/password \\
        --restart default/redis-client --interval 120
"""

import argparse
import logging
import sys
from typing import Optional

from kv_sync import config as settings
from kv_sync.k8s.exceptions import KubernetesError
from kv_sync.k8s.store import SecretStore
from kv_sync.keyvault.client import KeyVaultClient
from kv_sync.keyvault.exceptions import KeyVaultError
from kv_sync.sync.models import SyncSpec, SyncStatus
from kv_sync.sync.poller import SecretSyncPoller
from kv_sync.sync.signals import DeploymentRestartSignal
from kv_sync.sync.targets import FileTarget, KubernetesSecretTarget

logger = logging.getLogger(__name__)


def _split_pair(value: str, option: str) -> tuple[str, str]:
    name, sep, rest = value.partition("=")
    if not sep or not name or not rest:
        raise ValueError(f"{option} expects NAME=VALUE, got '{value}'")
    return name.strip(), rest.strip()


def parse_k8s_target(value: str) -> tuple[str, str, str, str]:
    """Parse ``NAME=NS/SECRET/KEY`` into its four parts."""
    name, location = _split_pair(value, "--k8s-secret")
    parts = location.split("/")
    if len(parts) != 3 or not all(parts):
        raise ValueError(f"--k8s-secret expects NAME=NS/SECRET/KEY, got '{value}'")
    return name, parts[0], parts[1], parts[2]


def parse_deployment(value: str) -> tuple[str, str]:
    """Parse ``NS/DEPLOYMENT``; a bare name uses the configured namespace."""
    namespace, sep, name = value.rpartition("/")
    if not name:
        raise ValueError(f"--restart expects NS/DEPLOYMENT, got '{value}'")
    return (namespace if sep else settings.K8S_NAMESPACE), name


def build_specs(
    file_targets: list[str],
    k8s_targets: list[str],
    store_factory,
) -> list[SyncSpec]:
    """Group target options by Key Vault secret name, keeping first-seen order."""
    specs: dict[str, SyncSpec] = {}

    for value in file_targets:
        name, path = _split_pair(value, "--secret")
        specs.setdefault(name, SyncSpec(secret_name=name)).targets.append(FileTarget(path))

    for value in k8s_targets:
        name, namespace, secret, key = parse_k8s_target(value)
        specs.setdefault(name, SyncSpec(secret_name=name)).targets.append(
            KubernetesSecretTarget(store_factory(), namespace, secret, key)
        )

    return list(specs.values())


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Keep local credential files and Kubernetes Secrets in sync with Azure Key Vault",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Sync once into a local file
    kv-sync --vault-name redis-kv-demo --secret redis-password=/etc/redis/password --once

    # Keep a Kubernetes Secret current and roll the client deployment on change
    kv-sync --vault-name redis-kv-demo \\
        --k8s-secret redis-password=default/redis-auth/password \\
        --restart default/redis-client
        """,
    )
    parser.add_argument(
        "--vault-name",
        default=settings.KEYVAULT_NAME,
        help="Key Vault name (default: $KEYVAULT_NAME)",
    )
    parser.add_argument(
        "--secret",
        action="append",
        default=[],
        metavar="NAME=PATH",
        help="Write Key Vault secret NAME to file PATH (repeatable)",
    )
    parser.add_argument(
        "--k8s-secret",
        action="append",
        default=[],
        metavar="NAME=NS/SECRET/KEY",
        help="Write Key Vault secret NAME to KEY of a Kubernetes Secret (repeatable)",
    )
    parser.add_argument(
        "--restart",
        action="append",
        default=[],
        metavar="NS/DEPLOYMENT",
        help="Roll this deployment after any change (repeatable)",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=settings.SYNC_POLL_INTERVAL,
        help="Seconds between polls (default: %(default)s)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single poll cycle and exit",
    )
    parser.add_argument(
        "--context",
        default=settings.K8S_CONTEXT,
        help="kubeconfig context for Kubernetes targets",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging",
    )
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for ``kv-sync``."""
    parser = build_parser()
    args = parser.parse_args(argv)

    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(level=log_level, format="%(levelname)s: %(message)s")

    if not args.secret and not args.k8s_secret:
        parser.error("at least one --secret or --k8s-secret is required")
    if not args.vault_name and not settings.KEYVAULT_URL:
        parser.error("--vault-name or KEYVAULT_NAME/KEYVAULT_URL is required")

    store: Optional[SecretStore] = None

    def get_store() -> SecretStore:
        nonlocal store
        if store is None:
            store = SecretStore(context=args.context)
        return store

    try:
        specs = build_specs(args.secret, args.k8s_secret, get_store)
        signals = [
            DeploymentRestartSignal(get_store(), *parse_deployment(value))
            for value in args.restart
        ]
        connection = settings.connection_config_from_env(vault_name=args.vault_name)
    except ValueError as e:
        print(f"Error: {e}")
        return 1

    client = KeyVaultClient(connection)
    try:
        poller = SecretSyncPoller(client, specs, signals=signals, interval=args.interval)
        if args.once:
            records = poller.poll_once()
            for record in records:
                print(f"{record.secret_name}: {record.status.value}"
                      + (f" ({record.error_message})" if record.error_message else ""))
            return 1 if any(r.status == SyncStatus.FAILED for r in records) else 0
        poller.run()
    except KeyboardInterrupt:
        print("\nInterrupted")
        return 130
    except (KeyVaultError, KubernetesError) as e:
        print(f"Error: {e}")
        return 1
    except ValueError as e:
        print(f"Error: {e}")
        return 1
    finally:
        client.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
