"""
Tests for the CLI interface.
"""
import json
import os
import shutil
import tempfile
from unittest.mock import patch, MagicMock

import pytest
from typer.testing import CliRunner

from cost_catalog.cli.main import (
    app,
    EXIT_CODE_FAIL,
    EXIT_CODE_OK,
    EXIT_CODE_STORE_UNAVAILABLE,
    EXIT_CODE_UNCONFIGURED,
)
from cost_catalog.core.errors import StoreUnavailableError, UnconfiguredError

runner = CliRunner()

ADMIN_KEY = "test-api-key"


@pytest.fixture(autouse=True)
def no_logging_setup():
    """Keep the CLI from replacing the test run's log handlers."""
    with patch('cost_catalog.cli.main.configure_logging'):
        yield


@pytest.fixture
def env():
    """Environment pointing the CLI at a fresh database."""
    temp_dir = tempfile.mkdtemp()
    environ = {
        "COST_CATALOG_DB": os.path.join(temp_dir, "test.db"),
        "COST_CATALOG_ADMIN_KEY": ADMIN_KEY,
    }
    with patch.dict(os.environ, environ):
        os.environ.pop("COST_CATALOG_API_KEY", None)
        result = runner.invoke(app, ["init"])
        assert result.exit_code == EXIT_CODE_OK
        yield environ
    shutil.rmtree(temp_dir, ignore_errors=True)


def _json(result):
    return json.loads(result.output)


class TestCLI:
    """Test CLI commands against a real database."""

    def test_init(self, env):
        """Test database initialization message."""
        result = runner.invoke(app, ["init"])
        assert result.exit_code == EXIT_CODE_OK
        assert "Database initialized successfully" in result.output

    def test_seed_then_list_prices(self, env):
        """Test the bundled seed produces resolvable prices."""
        result = runner.invoke(app, ["seed", "--api-key", ADMIN_KEY])
        assert result.exit_code == EXIT_CODE_OK
        assert "Seed complete" in result.output

        result = runner.invoke(app, ["prices", "list", "--as-of", "2025-06-01", "--json"])
        assert result.exit_code == EXIT_CODE_OK
        names = {p["name"]: p for p in _json(result)}
        assert names["twilio-sms-segment"]["cost_per_unit"] == "1.3300000000"

    def test_seed_invalid_file(self, env):
        """Test a missing seed file fails cleanly."""
        result = runner.invoke(app, ["seed", "missing.yaml", "--api-key", ADMIN_KEY])
        assert result.exit_code == EXIT_CODE_FAIL
        assert "Invalid seed catalog" in result.output

    def test_seed_without_key_writes_nothing(self, env):
        """Test seeding is refused without the admin key."""
        result = runner.invoke(app, ["seed"])
        assert result.exit_code == EXIT_CODE_FAIL
        assert "Missing API key" in result.output

        result = runner.invoke(app, ["costs", "history", "twilio-sms-segment"])
        assert result.exit_code == EXIT_CODE_FAIL
        result = runner.invoke(app, ["plans", "list", "--as-of", "2025-06-01", "--json"])
        assert _json(result) == []

    def test_seed_with_wrong_key_fails(self, env):
        """Test seeding is refused with a wrong key."""
        result = runner.invoke(app, ["seed", "--api-key", "wrong"])
        assert result.exit_code == EXIT_CODE_FAIL
        assert "Invalid API key" in result.output

    def test_set_plan_and_cost_then_show(self, env):
        """Test appending a plan and a price, then resolving it."""
        result = runner.invoke(app, [
            "plans", "set", "p", "--plan-tier", "basic", "--billing-cycle", "monthly",
            "--effective-from", "2025-01-01", "--api-key", ADMIN_KEY,
        ])
        assert result.exit_code == EXIT_CODE_OK

        result = runner.invoke(app, [
            "costs", "set", "x", "--provider", "p", "--plan-tier", "basic",
            "--billing-cycle", "monthly", "--cost", "0.0000000003",
            "--effective-from", "2025-01-01T00:00:00Z", "--api-key", ADMIN_KEY,
        ])
        assert result.exit_code == EXIT_CODE_OK

        result = runner.invoke(app, ["prices", "show", "x", "--as-of", "2025-06-01", "--json"])
        assert result.exit_code == EXIT_CODE_OK
        assert _json(result) == {
            "name": "x",
            "cost_per_unit": "0.0000000003",
            "provider": "p",
            "effective_from": "2025-01-01T00:00:00+00:00",
        }

    def test_api_key_from_environment(self, env):
        """Test the write key can come from COST_CATALOG_API_KEY."""
        with patch.dict(os.environ, {"COST_CATALOG_API_KEY": ADMIN_KEY}):
            result = runner.invoke(app, [
                "plans", "set", "p", "--plan-tier", "basic", "--billing-cycle", "monthly",
            ])
        assert result.exit_code == EXIT_CODE_OK

    def test_write_without_key_fails(self, env):
        """Test writes are refused without the admin key."""
        result = runner.invoke(app, [
            "costs", "set", "x", "--provider", "p", "--plan-tier", "basic",
            "--billing-cycle", "monthly", "--cost", "0.10",
        ])
        assert result.exit_code == EXIT_CODE_FAIL
        assert "Missing API key" in result.output

    def test_invalid_cost_fails(self, env):
        """Test a malformed cost is rejected."""
        result = runner.invoke(app, [
            "costs", "set", "x", "--provider", "p", "--plan-tier", "basic",
            "--billing-cycle", "monthly", "--cost", "-5", "--api-key", ADMIN_KEY,
        ])
        assert result.exit_code == EXIT_CODE_FAIL
        assert "must be >= 0" in result.output

    def test_duplicate_cost_conflicts(self, env):
        """Test a duplicate price point fails."""
        args = [
            "costs", "set", "x", "--provider", "p", "--plan-tier", "basic",
            "--billing-cycle", "monthly", "--cost", "0.10",
            "--effective-from", "2025-01-01", "--api-key", ADMIN_KEY,
        ]
        assert runner.invoke(app, args).exit_code == EXIT_CODE_OK
        result = runner.invoke(app, args)
        assert result.exit_code == EXIT_CODE_FAIL
        assert "Error:" in result.output

    def test_invalid_as_of_fails(self, env):
        """Test an unparseable --as-of is rejected."""
        result = runner.invoke(app, ["prices", "list", "--as-of", "yesterday"])
        assert result.exit_code == EXIT_CODE_FAIL
        assert "Invalid timestamp" in result.output

    def test_unconfigured_provider_exit_code(self, env):
        """Test a provider without a plan uses the operator exit code."""
        runner.invoke(app, [
            "costs", "set", "x", "--provider", "no-plan", "--plan-tier", "basic",
            "--billing-cycle", "monthly", "--cost", "0.10",
            "--effective-from", "2025-01-01", "--api-key", ADMIN_KEY,
        ])
        result = runner.invoke(app, ["prices", "show", "x"])
        assert result.exit_code == EXIT_CODE_UNCONFIGURED
        assert "no-plan" in result.output

    def test_show_unknown_price(self, env):
        """Test an unknown name is a client failure."""
        result = runner.invoke(app, ["prices", "show", "nope"])
        assert result.exit_code == EXIT_CODE_FAIL

    def test_history_plans_and_delete(self, env):
        """Test history, plan options and delete for a name."""
        for tier, cycle, cost in [("basic", "monthly", "0.10"), ("business", "annual", "0.08")]:
            runner.invoke(app, [
                "costs", "set", "x", "--provider", "p", "--plan-tier", tier,
                "--billing-cycle", cycle, "--cost", cost,
                "--effective-from", "2025-01-01", "--api-key", ADMIN_KEY,
            ])

        result = runner.invoke(app, ["costs", "history", "x", "--json"])
        assert result.exit_code == EXIT_CODE_OK
        assert len(_json(result)) == 2

        result = runner.invoke(app, ["costs", "plans", "x", "--json"])
        assert result.exit_code == EXIT_CODE_OK
        assert [p["plan_tier"] for p in _json(result)] == ["basic", "business"]

        result = runner.invoke(app, ["costs", "delete", "x", "--api-key", ADMIN_KEY])
        assert result.exit_code == EXIT_CODE_OK
        assert "Deleted 2 price point(s)" in result.output

        result = runner.invoke(app, ["costs", "history", "x"])
        assert result.exit_code == EXIT_CODE_FAIL

    def test_plan_list_show_history(self, env):
        """Test plan listing commands."""
        for tier, when in [("basic", "2025-01-01"), ("business", "2025-06-01")]:
            runner.invoke(app, [
                "plans", "set", "apollo", "--plan-tier", tier, "--billing-cycle", "monthly",
                "--effective-from", when, "--api-key", ADMIN_KEY,
            ])

        result = runner.invoke(app, ["plans", "list", "--as-of", "2025-03-01", "--json"])
        assert [p["plan_tier"] for p in _json(result)] == ["basic"]

        result = runner.invoke(app, ["plans", "show", "apollo", "--as-of", "2025-07-01", "--json"])
        assert _json(result)["plan_tier"] == "business"

        result = runner.invoke(app, ["plans", "history", "apollo", "--json"])
        assert [p["plan_tier"] for p in _json(result)] == ["business", "basic"]

    def test_early_year_effective_from(self, env):
        """Test a year below 1000 is stored and ordered before later plans."""
        for tier, when in [("basic", "0999-01-01"), ("business", "2025-01-01")]:
            result = runner.invoke(app, [
                "plans", "set", "p", "--plan-tier", tier, "--billing-cycle", "monthly",
                "--effective-from", when, "--api-key", ADMIN_KEY,
            ])
            assert result.exit_code == EXIT_CODE_OK

        result = runner.invoke(app, ["plans", "history", "p", "--json"])
        assert [p["effective_from"] for p in _json(result)] == [
            "2025-01-01T00:00:00+00:00",
            "0999-01-01T00:00:00+00:00",
        ]

    def test_empty_list_message(self, env):
        """Test listing with nothing resolvable."""
        result = runner.invoke(app, ["prices", "list"])
        assert result.exit_code == EXIT_CODE_OK
        assert "No resolvable prices" in result.output


class TestCLIErrorMapping:
    """Test exit codes for errors raised by the service."""

    @pytest.fixture
    def mock_service(self):
        """Mock the service factory."""
        with patch('cost_catalog.cli.main._get_service') as mock:
            service = MagicMock()
            mock.return_value = service
            yield service

    def test_store_unavailable_exit_code(self, mock_service):
        """Test store outages use their own exit code and hint at init."""
        mock_service.list_current_prices.side_effect = StoreUnavailableError(
            "Database error: no such table: providers_costs"
        )
        result = runner.invoke(app, ["prices", "list"])
        assert result.exit_code == EXIT_CODE_STORE_UNAVAILABLE
        assert "cost-catalog init" in result.output

    def test_unconfigured_exit_code(self, mock_service):
        """Test Unconfigured maps to the operator exit code."""
        mock_service.get_current_price.side_effect = UnconfiguredError(
            "No active plan for provider 'p'", provider="p"
        )
        result = runner.invoke(app, ["prices", "show", "x"])
        assert result.exit_code == EXIT_CODE_UNCONFIGURED

    def test_non_database_file_is_store_unavailable(self, tmp_path):
        """Test a file that is not a database maps to the store exit code."""
        garbage = tmp_path / "garbage.db"
        garbage.write_bytes(b"this is not a sqlite database" * 64)
        with patch.dict(os.environ, {"COST_CATALOG_DB": str(garbage)}):
            result = runner.invoke(app, ["prices", "list"])
        assert result.exit_code == EXIT_CODE_STORE_UNAVAILABLE
        assert "Store unavailable" in result.output

    def test_invalid_settings_fail(self):
        """Test invalid environment settings stop the CLI."""
        with patch.dict(os.environ, {"COST_CATALOG_LOG_LEVEL": "loud"}):
            result = runner.invoke(app, ["prices", "list"])
        assert result.exit_code == EXIT_CODE_FAIL
        assert "Invalid configuration" in result.output
