"""Tests for the kv-sync command line."""

from unittest.mock import Mock, patch

import pytest

from kv_sync.sync import FileTarget, KubernetesSecretTarget
from kv_sync.sync.run import build_specs, main, parse_deployment, parse_k8s_target


class TestParsing:
    """Test option parsing helpers."""

    def test_parse_k8s_target(self):
        assert parse_k8s_target("redis-password=cache/redis-auth/password") == (
            "redis-password",
            "cache",
            "redis-auth",
            "password",
        )

    @pytest.mark.parametrize(
        "value",
        ["redis-password", "redis-password=cache/redis-auth", "=a/b/c", "x=a//c"],
    )
    def test_parse_k8s_target_invalid(self, value):
        with pytest.raises(ValueError):
            parse_k8s_target(value)

    def test_parse_deployment(self):
        assert parse_deployment("cache/redis-client") == ("cache", "redis-client")

    def test_parse_deployment_uses_configured_namespace(self):
        with patch("kv_sync.sync.run.settings.K8S_NAMESPACE", "apps"):
            assert parse_deployment("redis-client") == ("apps", "redis-client")

    def test_build_specs_groups_by_secret(self, tmp_path):
        store = Mock()
        specs = build_specs(
            [f"redis-password={tmp_path / 'password'}", f"redis-user={tmp_path / 'user'}"],
            ["redis-password=default/redis-auth/password"],
            lambda: store,
        )

        assert [s.secret_name for s in specs] == ["redis-password", "redis-user"]
        password_targets = specs[0].targets
        assert isinstance(password_targets[0], FileTarget)
        assert isinstance(password_targets[1], KubernetesSecretTarget)
        assert password_targets[1].store is store

    def test_build_specs_invalid_file_option(self):
        with pytest.raises(ValueError):
            build_specs(["redis-password"], [], Mock)


class TestMain:
    """Test the kv-sync entry point."""

    @pytest.fixture
    def patched(self, keyvault_config, keyvault_client):
        with patch(
            "kv_sync.sync.run.settings.connection_config_from_env",
            return_value=keyvault_config,
        ), patch("kv_sync.sync.run.KeyVaultClient", return_value=keyvault_client):
            yield

    def test_once_writes_file(self, patched, fake_secret_client, tmp_path, capsys):
        fake_secret_client.set_secret("redis-password", "s3cret")
        path = tmp_path / "password"

        code = main(["--vault-name", "redis-kv-demo", "--secret", f"redis-password={path}", "--once"])

        assert code == 0
        assert path.read_text() == "s3cret"
        assert "redis-password: updated" in capsys.readouterr().out
        assert fake_secret_client.closed

    def test_once_failure_exit_code(self, patched, tmp_path, capsys):
        code = main(
            ["--vault-name", "redis-kv-demo", "--secret", f"missing={tmp_path / 'x'}", "--once"]
        )

        assert code == 1
        assert "missing: failed" in capsys.readouterr().out

    def test_requires_targets(self):
        with pytest.raises(SystemExit) as exc_info:
            main(["--vault-name", "redis-kv-demo"])
        assert exc_info.value.code == 2

    def test_bad_target_returns_error(self, capsys):
        code = main(["--vault-name", "redis-kv-demo", "--k8s-secret", "redis-password=bad"])

        assert code == 1
        assert "Error:" in capsys.readouterr().out
