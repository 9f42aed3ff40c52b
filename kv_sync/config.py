import os
import os.path
from typing import Optional

from dotenv import load_dotenv

from kv_sync.keyvault.models import AuthMethod, KeyVaultConnectionConfig, ServicePrincipal

# Load environment variables from .env file (repository root)
dotenv_path = os.path.join(os.path.dirname(__file__), '..', '.env')
load_dotenv(dotenv_path=dotenv_path)

# --- Azure AD / Service Principal ---
AZURE_TENANT_ID = os.environ.get('AZURE_TENANT_ID')
AZURE_CLIENT_ID = os.environ.get('AZURE_CLIENT_ID')
AZURE_CLIENT_SECRET = os.environ.get('AZURE_CLIENT_SECRET')

# --- Key Vault ---
KEYVAULT_NAME = os.environ.get('KEYVAULT_NAME')
KEYVAULT_URL = os.environ.get('KEYVAULT_URL')
KEYVAULT_AUTH_METHOD = os.environ.get('KEYVAULT_AUTH_METHOD')

# --- Sync poller ---
# Matches the CSI driver's rotation poll interval (2m)
SYNC_POLL_INTERVAL = float(os.environ.get('SYNC_POLL_INTERVAL', 120))
SYNC_CACHE_TTL = int(os.environ.get('SYNC_CACHE_TTL', 0))
# Comma-separated NAME=PATH and NAME=NS/SECRET/KEY entries for the Dagster job
SYNC_FILE_TARGETS = [t.strip() for t in os.environ.get('SYNC_FILE_TARGETS', '').split(',') if t.strip()]
SYNC_K8S_TARGETS = [t.strip() for t in os.environ.get('SYNC_K8S_TARGETS', '').split(',') if t.strip()]

# --- Kubernetes ---
K8S_NAMESPACE = os.environ.get('K8S_NAMESPACE', 'default')
K8S_CONTEXT = os.environ.get('K8S_CONTEXT')

# Path to .env file for configuration
ENV_PATH = dotenv_path


def connection_config_from_env(
    vault_name: Optional[str] = None,
    vault_url: Optional[str] = None,
    auth_method: Optional[str] = None,
) -> KeyVaultConnectionConfig:
    """Build a KeyVaultConnectionConfig from the environment.

    Explicit arguments win over environment values. Without an explicit
    auth method, Service Principal auth is used when all three
    ``AZURE_*`` variables are present, otherwise the default credential chain.
    """
    service_principal = None
    if AZURE_TENANT_ID and AZURE_CLIENT_ID and AZURE_CLIENT_SECRET:
        service_principal = ServicePrincipal(
            client_id=AZURE_CLIENT_ID,
            client_secret=AZURE_CLIENT_SECRET,
            tenant_id=AZURE_TENANT_ID,
        )

    method = auth_method or KEYVAULT_AUTH_METHOD
    if method is None:
        method = AuthMethod.SERVICE_PRINCIPAL if service_principal else AuthMethod.DEFAULT

    # An explicit vault name must not be overridden by KEYVAULT_URL
    if vault_url is None and vault_name is None:
        vault_url = KEYVAULT_URL

    return KeyVaultConnectionConfig(
        vault_name=vault_name or KEYVAULT_NAME,
        vault_url=vault_url,
        auth_method=AuthMethod(method),
        service_principal=service_principal,
        cache_ttl=SYNC_CACHE_TTL,
    )
