from dagster import Definitions

from .jobs.secret_sync import keyvault_secret_sync_job
from .resources import keyvault_secrets_resource
from .sensors.secret_sync import keyvault_secret_version_sensor

defs = Definitions(
    jobs=[
        keyvault_secret_sync_job,
    ],
    sensors=[
        keyvault_secret_version_sensor,
    ],
    resources={
        "keyvault": keyvault_secrets_resource(),
    },
    schedules=[]
)
