"""Tests for the command-line interface."""

import json
import mailbox
from email.message import EmailMessage
from pathlib import Path

import pytest
from typer.testing import CliRunner

from filter_move_mail import cli
from filter_move_mail.cli import app
from filter_move_mail.rules.conditions import Condition
from filter_move_mail.rules.engine import Rule, RuleAction
from filter_move_mail.storage.store import RuleStore


@pytest.fixture(autouse=True)
def wide_console(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep rich tables from folding cell text."""
    monkeypatch.setattr(cli.console, "width", 200)


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def config_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    path = tmp_path / "config"
    monkeypatch.setenv("FILTER_MOVE_MAIL_CONFIG_DIR", str(path))
    monkeypatch.setenv("FILTER_MOVE_MAIL_MAILDIR_ROOT", str(tmp_path / "mail"))
    monkeypatch.setenv("FILTER_MOVE_MAIL_LOG_DIR", str(tmp_path / "logs"))
    return path


class TestRulesCommands:
    """Tests for the rules sub-commands."""

    def test_parse(self, runner: CliRunner) -> None:
        result = runner.invoke(app, ["rules", "parse", "SUBJECT contains {big AND small}"])
        assert result.exit_code == 0
        assert "big AND small" in result.output

    def test_parse_nothing_valid(self, runner: CliRunner) -> None:
        result = runner.invoke(app, ["rules", "parse", "hello world"])
        assert result.exit_code == 1
        assert "No valid condition" in result.output

    def test_init_then_list(self, runner: CliRunner, config_dir: Path) -> None:
        result = runner.invoke(app, ["init"])
        assert result.exit_code == 0
        assert (config_dir / "rules.yaml").exists()
        assert (config_dir / "address_books.yaml").exists()

        result = runner.invoke(app, ["rules", "list"])
        assert result.exit_code == 0
        assert "Newsletters" in result.output

    def test_show_unknown_rule(self, runner: CliRunner, config_dir: Path) -> None:
        result = runner.invoke(app, ["rules", "show", "missing"])
        assert result.exit_code == 1
        assert "Rule not found" in result.output

    def test_broken_rule_file(self, runner: CliRunner, config_dir: Path) -> None:
        config_dir.mkdir(parents=True)
        (config_dir / "rules.yaml").write_text("rules:\n  - name: Bills\n    colour: red\n")

        result = runner.invoke(app, ["rules", "list"])
        assert result.exit_code == 1
        assert "Invalid rule" in result.output

        result = runner.invoke(app, ["config", "export"])
        assert result.exit_code == 1
        assert "Export failed" in result.output


class TestConfigCommands:
    """Tests for export/import."""

    def test_export_import(self, runner: CliRunner, config_dir: Path, tmp_path: Path) -> None:
        runner.invoke(app, ["init"])
        exported = tmp_path / "export.json"

        result = runner.invoke(app, ["config", "export", str(exported)])
        assert result.exit_code == 0
        data = json.loads(exported.read_text())
        assert data["version"] == "1.0.0"
        assert len(data["filters"]) == 2

        (config_dir / "rules.yaml").unlink()
        result = runner.invoke(app, ["config", "import", str(exported)])
        assert result.exit_code == 0
        assert len(RuleStore(config_dir / "rules.yaml").load_rules()) == 2

    def test_import_without_version(
        self, runner: CliRunner, config_dir: Path, tmp_path: Path
    ) -> None:
        source = tmp_path / "bad.json"
        source.write_text(json.dumps({"filters": []}))

        result = runner.invoke(app, ["config", "import", str(source)])
        assert result.exit_code == 1
        assert "Import failed" in result.output


class TestRunCommand:
    """Tests for a manual run against a Maildir tree."""

    def test_run_moves_matching_mail(
        self, runner: CliRunner, config_dir: Path, tmp_path: Path
    ) -> None:
        (tmp_path / "mail").mkdir()
        inbox = mailbox.Maildir(tmp_path / "mail" / "work", create=True)
        for subject in ("Invoice 42", "Lunch?"):
            msg = EmailMessage()
            msg["From"] = "billing@example.com"
            msg["Subject"] = subject
            msg.set_content("hi")
            inbox.add(msg)

        RuleStore(config_dir / "rules.yaml").save_rules(
            [
                Rule(
                    id="bills",
                    name="Bills",
                    conditions=[Condition(field="subject", operator="contains", value="invoice")],
                    action=RuleAction(destination_account_id="work", destination_path="/Bills"),
                )
            ]
        )

        result = runner.invoke(app, ["run", "--folder", "work:INBOX"])

        assert result.exit_code == 0, result.output
        assert "1 message(s) moved" in result.output
        assert len(inbox) == 1
        assert len(inbox.get_folder("Bills")) == 1

    def test_bad_folder_argument(self, runner: CliRunner, config_dir: Path) -> None:
        result = runner.invoke(app, ["run", "--folder", "no-separator"])
        assert result.exit_code != 0
