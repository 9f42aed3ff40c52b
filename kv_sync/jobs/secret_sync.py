from typing import Optional

from dagster import Failure, Field, OpExecutionContext, job, op

from kv_sync.k8s.store import SecretStore
from kv_sync.sync.models import SyncStatus
from kv_sync.sync.poller import SecretSyncPoller
from kv_sync.sync.run import build_specs, parse_deployment
from kv_sync.sync.signals import DeploymentRestartSignal

SYNC_OP_NAME = "sync_keyvault_secrets"


def sync_run_config(
    file_targets: list[str],
    k8s_targets: list[str],
    restart: Optional[list[str]] = None,
) -> dict:
    """Run config for :data:`keyvault_secret_sync_job`."""
    return {
        "ops": {
            SYNC_OP_NAME: {
                "config": {
                    "file_targets": list(file_targets),
                    "k8s_targets": list(k8s_targets),
                    "restart": list(restart or []),
                }
            }
        }
    }


@op(
    name=SYNC_OP_NAME,
    required_resource_keys={"keyvault"},
    config_schema={
        "file_targets": Field([str], default_value=[], description="NAME=PATH entries"),
        "k8s_targets": Field([str], default_value=[], description="NAME=NS/SECRET/KEY entries"),
        "restart": Field([str], default_value=[], description="NS/DEPLOYMENT to roll on change"),
        "kube_context": Field(str, is_required=False),
    },
)
def sync_keyvault_secrets(context: OpExecutionContext) -> dict:
    """Run one sync cycle and fail the run if any secret could not be delivered."""
    op_config = context.op_config
    store = None

    def get_store() -> SecretStore:
        nonlocal store
        if store is None:
            store = SecretStore(context=op_config.get("kube_context"))
        return store

    specs = build_specs(op_config["file_targets"], op_config["k8s_targets"], get_store)
    if not specs:
        context.log.info("No sync targets configured")
        return {}

    signals = [
        DeploymentRestartSignal(get_store(), *parse_deployment(value))
        for value in op_config["restart"]
    ]
    poller = SecretSyncPoller(context.resources.keyvault.client, specs, signals=signals)
    records = poller.poll_once()

    summary = {record.secret_name: record.status.value for record in records}
    for record in records:
        context.log.info(
            f"{record.secret_name}: {record.status.value} "
            f"({record.previous_version or 'none'} -> {record.new_version or 'none'})"
        )

    failed = [r for r in records if r.status == SyncStatus.FAILED]
    if failed:
        raise Failure(
            description=f"Failed to sync {len(failed)} secrets",
            metadata={r.secret_name: r.error_message or "" for r in failed},
        )
    return summary


@job(description="Copy changed Key Vault secrets to their file and Kubernetes targets")
def keyvault_secret_sync_job():
    sync_keyvault_secrets()
