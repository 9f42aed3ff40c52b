"""Migration orchestrator for moving a Kubernetes Secret into Azure Key Vault.

This module runs the migration runbook end to end:
1. Read the source Kubernetes Secret and plan Key Vault names
2. Write each key to Key Vault (with confirmation)
3. Verify the written values
4. Render or apply the SecretProviderClass that mounts them back
5. Delete the source Kubernetes Secret (with confirmation)

Usage:
    kv-migrate --namespace default --secret redis-auth --vault-name redis-kv-demo --dry-run
    kv-migrate --secret redis-auth --vault-name redis-kv-demo --phase all --confirm

Example:
    # Preview the plan and the SecretProviderClass
    kv-migrate --secret redis-auth --vault-name redis-kv-demo --prefix redis --dry-run

    # Write and verify only, rendering the provider class to a file
    kv-migrate --secret redis-auth --vault-name redis-kv-demo \\
        --phase read --phase write --phase verify --phase provider \\
        --output secretproviderclass.yaml
"""

import argparse
import logging
import sys
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from kv_sync import config as settings
from kv_sync.csi.provider_class import (
    SecretObject,
    SecretObjectData,
    SecretObjectMapping,
    SecretProviderClass,
    csi_volume,
    csi_volume_mount,
    dump_manifests,
    node_publish_secret,
)
from kv_sync.k8s.exceptions import KubernetesError
from kv_sync.k8s.models import KubernetesSecret
from kv_sync.k8s.store import SecretStore
from kv_sync.keyvault.client import KeyVaultClient
from kv_sync.keyvault.exceptions import KeyVaultError
from kv_sync.keyvault.models import ServicePrincipal
from kv_sync.migration.write_to_keyvault import (
    KeyVaultSecretWriter,
    SecretToWrite,
    WriteResult,
    build_write_plan,
)

logger = logging.getLogger(__name__)


class MigrationPhase(Enum):
    """Migration phases."""
    READ = "read"
    WRITE = "write"
    VERIFY = "verify"
    PROVIDER = "provider"
    CLEANUP = "cleanup"
    ALL = "all"


ORDERED_PHASES = [
    MigrationPhase.READ,
    MigrationPhase.WRITE,
    MigrationPhase.VERIFY,
    MigrationPhase.PROVIDER,
    MigrationPhase.CLEANUP,
]


@dataclass
class MigrationConfig:
    """Configuration for the migration."""
    secret_name: str = ""
    namespace: str = "default"
    vault_name: Optional[str] = None
    tenant_id: Optional[str] = None
    prefix: str = ""
    name_map: dict[str, str] = field(default_factory=dict)
    keys: list[str] = field(default_factory=list)
    provider_class_name: Optional[str] = None
    sync_secret_objects: bool = False
    use_vm_managed_identity: bool = False
    user_assigned_identity_id: Optional[str] = None
    create_node_publish_secret: bool = False
    output: Optional[Path] = None
    context: Optional[str] = None
    dry_run: bool = False
    confirm: bool = False

    @property
    def spc_name(self) -> str:
        return self.provider_class_name or f"{self.secret_name}-kv"


@dataclass
class MigrationResult:
    """Result of one migration phase."""
    phase: str = ""
    success: bool = False
    message: str = ""
    details: dict = field(default_factory=dict)


def _banner(title: str) -> None:
    print("\n" + "=" * 60)
    print(title)
    print("=" * 60)


class MigrationOrchestrator:
    """Orchestrator for the Kubernetes Secret to Key Vault migration."""

    def __init__(
        self,
        config: MigrationConfig,
        client: Optional[KeyVaultClient] = None,
        store: Optional[SecretStore] = None,
    ):
        """Initialize the migration orchestrator.

        Args:
            config: Migration configuration.
            client: Key Vault client; built from the environment when omitted.
            store: Kubernetes store; built from kubeconfig when omitted.
        """
        self.config = config
        self._client = client
        self._store = store
        self.source: Optional[KubernetesSecret] = None
        self.plan: list[SecretToWrite] = []
        self.write_result: Optional[WriteResult] = None
        self.provider_class: Optional[SecretProviderClass] = None

    @property
    def client(self) -> KeyVaultClient:
        if self._client is None:
            self._client = KeyVaultClient(
                settings.connection_config_from_env(vault_name=self.config.vault_name)
            )
        return self._client

    @property
    def store(self) -> SecretStore:
        if self._store is None:
            self._store = SecretStore(context=self.config.context)
        return self._store

    def _confirm_action(self, action: str) -> bool:
        """Confirm an action with the user.

        Args:
            action: Description of the action.

        Returns:
            True if confirmed, False otherwise.
        """
        if self.config.confirm:
            return True

        response = input(f"\n{action}\n\nProceed? [y/N]: ").strip().lower()
        return response in ["y", "yes"]

    # =====================================================================
    # Phases
    # =====================================================================

    def run_phase_read(self) -> MigrationResult:
        """Phase 1: Read the source Secret and plan Key Vault names."""
        _banner("PHASE 1: READ KUBERNETES SECRET")

        ns, name = self.config.namespace, self.config.secret_name
        print(f"\nReading secret {ns}/{name}...")
        try:
            self.source = self.store.read_secret(ns, name)
            self.plan = build_write_plan(
                self.source,
                prefix=self.config.prefix,
                name_map=self.config.name_map,
                keys=self.config.keys or None,
            )
        except KubernetesError as e:
            return MigrationResult(phase="read", success=False, message=str(e))
        except ValueError as e:
            return MigrationResult(phase="read", success=False, message=f"Invalid plan: {e}")

        if not self.plan:
            return MigrationResult(
                phase="read",
                success=False,
                message=f"Secret {ns}/{name} has no keys to migrate",
            )

        print("\nKeys to migrate:")
        print("-" * 60)
        for secret in self.plan:
            print(f"  - {secret.source_key} -> {secret.name}")

        return MigrationResult(
            phase="read",
            success=True,
            message=f"Planned {len(self.plan)} secrets",
            details={"plan": {s.source_key: s.name for s in self.plan}},
        )

    def run_phase_write(self) -> MigrationResult:
        """Phase 2: Write planned secrets to Key Vault."""
        _banner("PHASE 2: WRITE SECRETS TO KEY VAULT")

        if not self.plan:
            return MigrationResult(
                phase="write",
                success=False,
                message="No secrets to write. Run read phase first.",
            )

        writer = KeyVaultSecretWriter(self.client)

        if self.config.dry_run:
            self.write_result = writer.write_batch(self.plan, dry_run=True)
            print(f"[DRY RUN] Would write {len(self.plan)} secrets to {self.client.vault_url}")
            return MigrationResult(
                phase="write",
                success=True,
                message="Dry run completed - no secrets written",
                details={"would_write": len(self.plan)},
            )

        if not self._confirm_action(
            f"Write {len(self.plan)} secrets to {self.client.vault_url}?"
        ):
            return MigrationResult(
                phase="write",
                success=False,
                message="Write phase cancelled by user",
            )

        print("\nWriting secrets to Key Vault...")
        self.write_result = writer.write_batch(self.plan)
        result = self.write_result

        print("\n" + "-" * 60)
        print("WRITE SUMMARY:")
        print(f"  - Written: {len(result.successful)}")
        print(f"  - Unchanged: {len(result.skipped)}")
        print(f"  - Failed: {len(result.failed)}")
        for failure in result.failed:
            print(f"    - {failure['name']}: {failure['error']}")

        return MigrationResult(
            phase="write",
            success=result.success,
            message=f"Wrote {len(result.successful)} secrets to Key Vault",
            details={
                "written": len(result.successful),
                "skipped": len(result.skipped),
                "failed": len(result.failed),
            },
        )

    def run_phase_verify(self) -> MigrationResult:
        """Phase 3: Re-read each secret from Key Vault and compare."""
        _banner("PHASE 3: VERIFY SECRETS")

        if not self.plan:
            return MigrationResult(
                phase="verify",
                success=False,
                message="Nothing to verify. Run read phase first.",
            )

        if self.config.dry_run:
            print(f"[DRY RUN] Would verify {len(self.plan)} secrets")
            return MigrationResult(
                phase="verify",
                success=True,
                message="Dry run - verification skipped",
            )

        writer = KeyVaultSecretWriter(self.client)
        verified = []
        failures: dict[str, Any] = {}
        for secret in self.plan:
            ok, error = writer.verify_secret(secret)
            if ok:
                verified.append(secret.name)
                print(f"  [OK] {secret.name}")
            else:
                failures[secret.name] = error
                print(f"  [FAIL] {secret.name}: {error}")

        return MigrationResult(
            phase="verify",
            success=not failures,
            message=f"Verified {len(verified)}/{len(self.plan)} secrets",
            details={"verified": verified, "failed": failures},
        )

    def build_provider_class(self) -> SecretProviderClass:
        """Render the SecretProviderClass mounting the migrated secrets.

        Objects are aliased back to the original keys so mounted file names
        match what workloads read today.
        """
        tenant_id = self.config.tenant_id or settings.AZURE_TENANT_ID
        if not tenant_id:
            raise ValueError("A tenant id is required (--tenant-id or AZURE_TENANT_ID)")
        vault_name = self.config.vault_name or settings.KEYVAULT_NAME
        if not vault_name:
            raise ValueError("A Key Vault name is required (--vault-name or KEYVAULT_NAME)")

        objects = [
            SecretObject(object_name=s.name, object_alias=s.source_key)
            for s in self.plan
        ]
        secret_objects = []
        if self.config.sync_secret_objects:
            secret_objects.append(
                SecretObjectMapping(
                    secret_name=self.config.secret_name,
                    data=[
                        SecretObjectData(object_name=s.source_key, key=s.source_key)
                        for s in self.plan
                    ],
                )
            )

        return SecretProviderClass(
            name=self.config.spc_name,
            namespace=self.config.namespace,
            keyvault_name=vault_name,
            tenant_id=tenant_id,
            objects=objects,
            secret_objects=secret_objects,
            use_vm_managed_identity=self.config.use_vm_managed_identity,
            user_assigned_identity_id=self.config.user_assigned_identity_id,
        )

    def _node_publish_secret(self) -> KubernetesSecret:
        if not (settings.AZURE_CLIENT_ID and settings.AZURE_CLIENT_SECRET and settings.AZURE_TENANT_ID):
            raise ValueError(
                "AZURE_CLIENT_ID, AZURE_CLIENT_SECRET and AZURE_TENANT_ID are required "
                "for the node publish secret"
            )
        sp = ServicePrincipal(
            client_id=settings.AZURE_CLIENT_ID,
            client_secret=settings.AZURE_CLIENT_SECRET,
            tenant_id=settings.AZURE_TENANT_ID,
        )
        return node_publish_secret(self.config.namespace, sp)

    def run_phase_provider(self) -> MigrationResult:
        """Phase 4: Render or apply the SecretProviderClass."""
        _banner("PHASE 4: SECRET PROVIDER CLASS")

        if not self.plan:
            return MigrationResult(
                phase="provider",
                success=False,
                message="No secrets planned. Run read phase first.",
            )

        try:
            self.provider_class = self.build_provider_class()
            creds = self._node_publish_secret() if self.config.create_node_publish_secret else None
        except ValueError as e:
            return MigrationResult(phase="provider", success=False, message=str(e))

        manifest_yaml = self.provider_class.to_yaml()
        details: dict[str, Any] = {"name": self.provider_class.name}

        if self.config.output:
            self.config.output.parent.mkdir(parents=True, exist_ok=True)
            self.config.output.write_text(manifest_yaml)
            print(f"\nSecretProviderClass written to: {self.config.output}")
            details["output_file"] = str(self.config.output)
        elif self.config.dry_run:
            print("\n[DRY RUN] Would apply:\n")
            print(manifest_yaml)
        else:
            if not self._confirm_action(
                f"Apply SecretProviderClass {self.config.namespace}/{self.provider_class.name}?"
            ):
                return MigrationResult(
                    phase="provider",
                    success=False,
                    message="Provider phase cancelled by user",
                )
            try:
                self.store.apply_custom_object(self.provider_class.to_manifest())
            except KubernetesError as e:
                return MigrationResult(phase="provider", success=False, message=str(e))
            print(f"\nApplied SecretProviderClass {self.provider_class.name}")
            details["applied"] = True

        if creds is not None:
            if self.config.dry_run:
                print(f"[DRY RUN] Would apply node publish secret {creds.namespace}/{creds.name}")
            else:
                try:
                    self.store.apply_secret(creds)
                except KubernetesError as e:
                    return MigrationResult(phase="provider", success=False, message=str(e))
                print(f"Applied node publish secret {creds.namespace}/{creds.name}")
                details["node_publish_secret"] = creds.name

        volume_name = "secrets-store-inline"
        snippet = {
            "volumes": [csi_volume(volume_name, self.provider_class.name, creds.name if creds else None)],
            "volumeMounts": [csi_volume_mount(volume_name)],
        }
        details["volume"] = snippet["volumes"][0]
        print("\nPod spec snippet:\n")
        print(dump_manifests([snippet]))

        return MigrationResult(
            phase="provider",
            success=True,
            message=f"SecretProviderClass {self.provider_class.name} ready",
            details=details,
        )

    def run_phase_cleanup(self) -> MigrationResult:
        """Phase 5: Delete the source Kubernetes Secret."""
        _banner("PHASE 5: CLEANUP")

        ns, name = self.config.namespace, self.config.secret_name

        if self.config.dry_run:
            print(f"[DRY RUN] Would delete secret {ns}/{name}")
            return MigrationResult(
                phase="cleanup",
                success=True,
                message="Dry run - source secret kept",
            )

        if not self._confirm_action(
            f"Delete Kubernetes secret {ns}/{name}? Workloads must already mount "
            "the Key Vault secrets."
        ):
            return MigrationResult(
                phase="cleanup",
                success=False,
                message="Cleanup cancelled by user",
            )

        try:
            deleted = self.store.delete_secret(ns, name)
        except KubernetesError as e:
            return MigrationResult(phase="cleanup", success=False, message=str(e))

        message = f"Deleted secret {ns}/{name}" if deleted else f"Secret {ns}/{name} already gone"
        print(f"\n{message}")
        return MigrationResult(
            phase="cleanup",
            success=True,
            message=message,
            details={"deleted": deleted},
        )

    # =====================================================================
    # Runner
    # =====================================================================

    def _run_phase(self, phase: MigrationPhase) -> MigrationResult:
        handlers = {
            MigrationPhase.READ: self.run_phase_read,
            MigrationPhase.WRITE: self.run_phase_write,
            MigrationPhase.VERIFY: self.run_phase_verify,
            MigrationPhase.PROVIDER: self.run_phase_provider,
            MigrationPhase.CLEANUP: self.run_phase_cleanup,
        }
        try:
            return handlers[phase]()
        except (KeyVaultError, KubernetesError) as e:
            logger.error(f"Phase '{phase.value}' failed: {e}")
            return MigrationResult(phase=phase.value, success=False, message=str(e))

    def run(self, phases: list[MigrationPhase]) -> list[MigrationResult]:
        """Run the given phases in runbook order, stopping on the first failure.

        Phases after ``read`` need the plan, so ``read`` is always run first
        when it was not requested explicitly.
        """
        print("\n" + "#" * 60)
        print("# KEY VAULT MIGRATION")
        print(f"# {self.config.namespace}/{self.config.secret_name} -> "
              f"{self.config.vault_name or settings.KEYVAULT_NAME or settings.KEYVAULT_URL}")
        print("#" * 60)

        if self.config.dry_run:
            print("\n[DRY RUN MODE - No changes will be made]")

        if MigrationPhase.ALL in phases:
            selected = list(ORDERED_PHASES)
        else:
            selected = [p for p in ORDERED_PHASES if p in phases]
        needs_plan = {MigrationPhase.WRITE, MigrationPhase.VERIFY, MigrationPhase.PROVIDER}
        if MigrationPhase.READ not in selected and needs_plan & set(selected):
            selected.insert(0, MigrationPhase.READ)

        results: list[MigrationResult] = []
        for phase in selected:
            result = self._run_phase(phase)
            results.append(result)
            if not result.success:
                print(f"\n[ERROR] Phase '{phase.value}' failed: {result.message}")
                break

        print("\n" + "#" * 60)
        print("# MIGRATION SUMMARY")
        print("#" * 60)
        for result in results:
            status = "OK" if result.success else "FAILED"
            print(f"  [{status}] {result.phase}: {result.message}")

        return results


def _parse_map(values: list[str]) -> dict[str, str]:
    mapping = {}
    for value in values:
        key, sep, name = value.partition("=")
        if not sep or not key or not name:
            raise ValueError(f"--map expects key=name, got '{value}'")
        mapping[key] = name
    return mapping


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Migrate a Kubernetes Secret into Azure Key Vault",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Dry run to preview migration
    kv-migrate --secret redis-auth --vault-name redis-kv-demo --dry-run

    # Run full migration without prompts
    kv-migrate --secret redis-auth --vault-name redis-kv-demo --phase all --confirm

    # Explicit names and a rendered provider class
    kv-migrate --secret redis-auth --map password=redis-password \\
        --phase provider --output spc.yaml
        """,
    )
    parser.add_argument(
        "--secret", "-s",
        required=True,
        help="Source Kubernetes Secret name",
    )
    parser.add_argument(
        "--namespace",
        default=settings.K8S_NAMESPACE,
        help="Source namespace (default: %(default)s)",
    )
    parser.add_argument(
        "--vault-name",
        default=settings.KEYVAULT_NAME,
        help="Key Vault name (default: $KEYVAULT_NAME)",
    )
    parser.add_argument(
        "--tenant-id",
        default=settings.AZURE_TENANT_ID,
        help="Azure AD tenant for the SecretProviderClass",
    )
    parser.add_argument(
        "--prefix",
        default="",
        help="Prefix for Key Vault secret names (<prefix>-<key>)",
    )
    parser.add_argument(
        "--map",
        action="append",
        default=[],
        metavar="KEY=NAME",
        help="Explicit Key Vault name for a key (repeatable)",
    )
    parser.add_argument(
        "--key",
        action="append",
        default=[],
        help="Only migrate this key (repeatable)",
    )
    parser.add_argument(
        "--provider-class",
        default=None,
        help="SecretProviderClass name (default: <secret>-kv)",
    )
    parser.add_argument(
        "--secret-objects",
        action="store_true",
        help="Let the CSI driver recreate the Kubernetes Secret from mounted objects",
    )
    parser.add_argument(
        "--use-vm-managed-identity",
        action="store_true",
        help="Authenticate the CSI driver with the node managed identity",
    )
    parser.add_argument(
        "--user-assigned-identity-id",
        default=None,
        help="Client id of a user-assigned managed identity",
    )
    parser.add_argument(
        "--node-publish-secret",
        action="store_true",
        help="Create the secrets-store-creds Secret from AZURE_CLIENT_ID/AZURE_CLIENT_SECRET",
    )
    parser.add_argument(
        "--output", "-o",
        default=None,
        help="Write the SecretProviderClass YAML here instead of applying it",
    )
    parser.add_argument(
        "--context",
        default=settings.K8S_CONTEXT,
        help="kubeconfig context",
    )
    parser.add_argument(
        "--phase", "-p",
        action="append",
        choices=[p.value for p in MigrationPhase],
        default=[],
        help="Phases to run (can be specified multiple times)",
    )
    parser.add_argument(
        "--dry-run", "-n",
        action="store_true",
        help="Preview changes without making them",
    )
    parser.add_argument(
        "--confirm", "-y",
        action="store_true",
        help="Skip confirmation prompts",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging",
    )
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for ``kv-migrate``."""
    args = build_parser().parse_args(argv)

    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(level=log_level, format="%(levelname)s: %(message)s")

    try:
        name_map = _parse_map(args.map)
    except ValueError as e:
        print(f"Error: {e}")
        return 1

    config = MigrationConfig(
        secret_name=args.secret,
        namespace=args.namespace,
        vault_name=args.vault_name,
        tenant_id=args.tenant_id,
        prefix=args.prefix,
        name_map=name_map,
        keys=args.key,
        provider_class_name=args.provider_class,
        sync_secret_objects=args.secret_objects,
        use_vm_managed_identity=args.use_vm_managed_identity,
        user_assigned_identity_id=args.user_assigned_identity_id,
        create_node_publish_secret=args.node_publish_secret,
        output=Path(args.output) if args.output else None,
        context=args.context,
        dry_run=args.dry_run,
        confirm=args.confirm,
    )
    phases = [MigrationPhase(p) for p in (args.phase or ["all"])]

    orchestrator = MigrationOrchestrator(config)
    try:
        results = orchestrator.run(phases)
    except KeyboardInterrupt:
        print("\nInterrupted")
        return 130
    except ValueError as e:
        print(f"Error: {e}")
        return 1
    except Exception:
        logger.exception("Migration failed unexpectedly")
        return 1

    return 0 if results and all(r.success for r in results) else 1


if __name__ == "__main__":
    sys.exit(main())
