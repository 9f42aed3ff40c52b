import hashlib
import json
from typing import Optional

from dagster import RunRequest, SensorEvaluationContext, SkipReason, sensor

from kv_sync.config import SYNC_FILE_TARGETS, SYNC_K8S_TARGETS
from kv_sync.jobs.secret_sync import keyvault_secret_sync_job, sync_run_config
from kv_sync.keyvault.exceptions import KeyVaultError


def watched_secret_names(file_targets: list[str], k8s_targets: list[str]) -> list[str]:
    """Key Vault names referenced by NAME=... target entries, first-seen order."""
    names: list[str] = []
    for entry in list(file_targets) + list(k8s_targets):
        name = entry.partition("=")[0].strip()
        if name and name not in names:
            names.append(name)
    return names


def detect_version_changes(
    versions: dict[str, Optional[str]],
    cursor: Optional[str],
) -> tuple[list[str], str]:
    """Compare current versions with the cursor.

    The cursor is a JSON object mapping secret name to the last version seen.
    Names missing from the cursor count as changed.

    Returns:
        (changed names, new cursor)
    """
    previous = json.loads(cursor) if cursor else {}
    changed = [name for name, version in versions.items() if previous.get(name) != version]
    return changed, json.dumps(versions, sort_keys=True)


@sensor(
    job=keyvault_secret_sync_job,
    minimum_interval_seconds=120,  # CSI driver rotation poll interval
    name="keyvault_secret_version_sensor",
    required_resource_keys={"keyvault"},
)
def keyvault_secret_version_sensor(context: SensorEvaluationContext):
    """
    Sensor that watches Key Vault secret versions and triggers a sync run on change.
    """
    names = watched_secret_names(SYNC_FILE_TARGETS, SYNC_K8S_TARGETS)
    if not names:
        return SkipReason("No sync targets configured (SYNC_FILE_TARGETS / SYNC_K8S_TARGETS)")

    try:
        versions = context.resources.keyvault.get_secret_versions(names)
    except KeyVaultError as e:
        context.log.error(f"Error reading Key Vault secret versions: {e}")
        return SkipReason(f"Error reading Key Vault: {e}")

    changed, new_cursor = detect_version_changes(versions, context.cursor)
    if not changed:
        return SkipReason("No Key Vault secret versions changed")

    context.update_cursor(new_cursor)
    context.log.info(f"Triggering sync for changed secrets: {', '.join(changed)}")
    return RunRequest(
        run_key=f"kv-sync-{hashlib.sha256(new_cursor.encode()).hexdigest()[:16]}",
        run_config=sync_run_config(SYNC_FILE_TARGETS, SYNC_K8S_TARGETS),
        tags={
            "changed_secrets": ",".join(changed),
            "sensor_name": "keyvault_secret_version_sensor",
        },
    )
