from setuptools import find_packages, setup

setup(
    name="kv_sync",
    version="0.1.0",
    packages=find_packages(exclude=["kv_sync_tests"]),
    install_requires=[
        "dagster",
        "pydantic>=2",
        "tenacity",
        "python-dotenv",
        "azure-core",
        "azure-identity",
        "azure-keyvault-secrets",
        "kubernetes",
        "urllib3",
        "PyYAML",
    ],
    extras_require={"dev": ["dagster-webserver", "pytest"]},
    entry_points={
        "console_scripts": [
            "kv-migrate=kv_sync.migration.migrate:main",
            "kv-sync=kv_sync.sync.run:main",
        ],
    },
)
