"""
Test Suite: CLI
===============

Operator commands run against a throwaway SQLite database.
"""

import json

import pytest
from typer.testing import CliRunner

from conftest import PASSWORD
from turnstile import cli

runner = CliRunner()


@pytest.fixture
def cli_settings(settings, monkeypatch):
    monkeypatch.setattr(cli, "_load_settings", lambda: settings)
    result = runner.invoke(cli.app, ["init-db"])
    assert result.exit_code == 0, result.output
    return settings


def _register_user() -> tuple[str, str]:
    """Create a tenant and a user through the engine; returns (user_id, session_id)."""

    async def _work(engine):
        tenant = await engine.accounts.create_tenant("Acme Courts")
        result = await engine.accounts.register(
            "owner@example.com", PASSWORD, "Olive Owner", tenant_id=tenant.id
        )
        await engine.accounts.login("owner@example.com", PASSWORD, tenant_id=tenant.id)
        return result.user.id, result.tokens.session_id

    return cli._run(_work)


class TestDatabaseCommands:
    def test_init_db(self, cli_settings):
        result = runner.invoke(cli.app, ["init-db"])

        assert result.exit_code == 0
        assert "Database tables created" in result.output

    def test_purge_tokens_empty(self, cli_settings):
        result = runner.invoke(cli.app, ["purge-tokens"])

        assert result.exit_code == 0
        assert "Purged 0 revoked refresh token record(s)." in result.output


class TestTenantCommands:
    def test_create(self, cli_settings):
        result = runner.invoke(cli.app, ["tenant", "create", "Acme Courts"])

        assert result.exit_code == 0
        assert "Tenant Created" in result.output
        assert "Acme Courts" in result.output


class TestSessionCommands:
    def test_no_sessions(self, cli_settings):
        result = runner.invoke(cli.app, ["sessions", "no-such-user"])

        assert result.exit_code == 0
        assert "No active sessions." in result.output

    def test_lists_sessions(self, cli_settings):
        user_id, _ = _register_user()

        result = runner.invoke(cli.app, ["sessions", user_id])

        assert result.exit_code == 0
        assert "Active sessions (2)" in result.output

    def test_logout_all_except(self, cli_settings):
        user_id, session_id = _register_user()

        result = runner.invoke(cli.app, ["logout-all", user_id, "--except", session_id])

        assert result.exit_code == 0
        assert "Revoked 1 refresh token record(s)." in result.output

        listed = runner.invoke(cli.app, ["sessions", user_id])
        assert "Active sessions (1)" in listed.output

    def test_logout_all(self, cli_settings):
        user_id, _ = _register_user()

        result = runner.invoke(cli.app, ["logout-all", user_id])

        assert "Revoked 2 refresh token record(s)." in result.output


class TestUtilityCommands:
    def test_generate_secrets(self):
        result = runner.invoke(cli.app, ["generate-secrets"])

        assert result.exit_code == 0
        for name in cli.SECRET_NAMES:
            assert f"{name}=" in result.output

    def test_generate_secrets_json(self):
        result = runner.invoke(cli.app, ["generate-secrets", "--json"])

        values = json.loads(result.output)
        assert set(values) == set(cli.SECRET_NAMES)
        assert len(set(values.values())) == 3
        assert all(len(v) >= 64 for v in values.values())

    def test_version(self):
        result = runner.invoke(cli.app, ["version"])

        assert result.exit_code == 0
        assert "Turnstile v1.0.0" in result.output
