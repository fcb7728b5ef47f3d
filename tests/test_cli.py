"""Tests for scripts/run_scheduler.py, run in-process against a temp database."""

import importlib.util
import json
from datetime import datetime
from pathlib import Path

import pytest

from penny_batch.tasks import CATCH_UP_TASK_TYPE
from penny_kernel.domain.types import RecurringInterval

SCRIPT = Path(__file__).resolve().parent.parent / "scripts" / "run_scheduler.py"


@pytest.fixture(scope="module")
def cli():
    spec = importlib.util.spec_from_file_location("run_scheduler", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def _run(cli, capsys, database_url, *argv):
    code = cli.main(["--db-url", database_url, "--create-tables", *argv])
    return code, json.loads(capsys.readouterr().out)


class TestCli:
    def test_preview_on_empty_database(self, cli, capsys, database_url):
        code, out = _run(cli, capsys, database_url, "preview")

        assert code == 0
        assert out["total_recurring"] == 0
        assert out["templates"] == []

    def test_run_catch_up(self, cli, capsys, database_url, make_account, make_template, occurrences_of):
        template = make_template(make_account(), date=datetime(2024, 1, 1))

        code, out = _run(cli, capsys, database_url, "run", CATCH_UP_TASK_TYPE)

        assert code == 0
        assert out["status"] == "completed"
        assert out["succeeded"] == 1
        assert len(occurrences_of(template.id)) >= 5

    def test_preview_bounds_backlog_by_config(
        self, cli, capsys, database_url, make_account, make_template,
    ):
        make_template(
            make_account(), date=datetime(2000, 1, 1), interval=RecurringInterval.DAILY,
        )

        code, out = _run(cli, capsys, database_url, "preview")

        assert code == 0
        assert out["with_errors"] == 1
        assert "more than 5000" in out["templates"][0]["error"]

    def test_dead_letters_empty(self, cli, capsys, database_url):
        code, out = _run(cli, capsys, database_url, "dead-letters", "--limit", "5")

        assert code == 0
        assert out == []

    def test_unknown_command(self, cli):
        with pytest.raises(SystemExit):
            cli.main(["explode"])
