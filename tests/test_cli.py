"""Tests for the summons-enrich CLI."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from summons_enrichment.cli import cli
from tests.utils import summons_item


@pytest.fixture
def runner() -> CliRunner:
    """A CLI runner with no ambient worker settings."""
    return CliRunner(
        env={
            "GEMINI_API_KEY": "",
            "SUMMONS_TABLE": "",
            "SUMMONS_DB_PATH": "",
            "FETCH_TIMEOUT_SECONDS": "",
        }
    )


@pytest.fixture
def record_file(tmp_path: Path) -> Path:
    """A JSON file holding one summons record."""
    path = tmp_path / "record.json"
    path.write_text(json.dumps(summons_item()))
    return path


def _put(runner: CliRunner, db_path: Path, record_file: Path) -> None:
    result = runner.invoke(
        cli, ["put", "--db", str(db_path), str(record_file)]
    )
    assert result.exit_code == 0, result.output


class TestStoreCommands:
    """Tests for init-db, put, list and show."""

    def test_init_db(self, runner: CliRunner, db_path: Path) -> None:
        """init-db shall create the database file."""
        result = runner.invoke(cli, ["init-db", "--db", str(db_path)])

        assert result.exit_code == 0
        assert db_path.exists()
        assert str(db_path) in result.output

    def test_put_and_show(
        self, runner: CliRunner, db_path: Path, record_file: Path
    ) -> None:
        """A stored record shall be printed back as JSON."""
        _put(runner, db_path, record_file)

        result = runner.invoke(
            cli, ["show", "--db", str(db_path), "summons-1"]
        )

        assert result.exit_code == 0
        assert json.loads(result.output)["summons_number"] == "000954041L"

    def test_put_uses_table_option(
        self, runner: CliRunner, db_path: Path, record_file: Path
    ) -> None:
        """--table shall select the table records go to."""
        result = runner.invoke(
            cli,
            ["put", "--db", str(db_path), "--table", "Other", str(record_file)],
        )
        assert result.exit_code == 0
        assert "Other/summons-1" in result.output

        missing = runner.invoke(
            cli, ["show", "--db", str(db_path), "summons-1"]
        )
        found = runner.invoke(
            cli, ["show", "--db", str(db_path), "--table", "Other", "summons-1"]
        )

        assert missing.exit_code != 0
        assert found.exit_code == 0

    def test_put_rejects_item_without_id(
        self, runner: CliRunner, db_path: Path, tmp_path: Path
    ) -> None:
        """A record without an id shall be rejected."""
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"summons_number": "1"}))

        result = runner.invoke(cli, ["put", "--db", str(db_path), str(path)])

        assert result.exit_code != 0
        assert "id" in result.output

    def test_put_rejects_invalid_json(
        self, runner: CliRunner, db_path: Path, tmp_path: Path
    ) -> None:
        """Malformed JSON shall be reported as a bad parameter."""
        path = tmp_path / "bad.json"
        path.write_text("{not json")

        result = runner.invoke(cli, ["put", "--db", str(db_path), str(path)])

        assert result.exit_code != 0
        assert "Invalid JSON" in result.output

    def test_put_from_stdin(self, runner: CliRunner, db_path: Path) -> None:
        """- shall read the record from stdin."""
        result = runner.invoke(
            cli,
            ["put", "--db", str(db_path), "-"],
            input=json.dumps({"id": "from-stdin"}),
        )

        assert result.exit_code == 0
        assert "from-stdin" in result.output

    def test_list(
        self, runner: CliRunner, db_path: Path, record_file: Path
    ) -> None:
        """list shall print stored ids."""
        empty = runner.invoke(cli, ["list", "--db", str(db_path)])
        assert "No records found." in empty.output

        _put(runner, db_path, record_file)
        result = runner.invoke(cli, ["list", "--db", str(db_path)])

        assert result.exit_code == 0
        assert result.output.strip() == "summons-1"

    def test_show_missing(self, runner: CliRunner, db_path: Path) -> None:
        """show shall fail for an unknown id."""
        result = runner.invoke(cli, ["show", "--db", str(db_path), "nope"])

        assert result.exit_code != 0
        assert "No record 'nope'" in result.output

    def test_bad_timeout_environment(
        self, runner: CliRunner, db_path: Path
    ) -> None:
        """An invalid timeout variable shall be reported, not raised."""
        result = runner.invoke(
            cli,
            ["init-db", "--db", str(db_path)],
            env={"FETCH_TIMEOUT_SECONDS": "soon"},
        )

        assert result.exit_code != 0
        assert "FETCH_TIMEOUT_SECONDS" in result.output


class TestRunCommand:
    """Tests for the run command."""

    def test_run_with_options(
        self,
        runner: CliRunner,
        db_path: Path,
        record_file: Path,
        server_url: str,
    ) -> None:
        """run shall enrich the record from individual options."""
        _put(runner, db_path, record_file)

        result = runner.invoke(
            cli,
            [
                "run",
                "--db",
                str(db_path),
                "--summons-id",
                "summons-1",
                "--summons-number",
                "000954041L",
                "--video-link",
                f"{server_url}/video/table",
                "--violation-date",
                "2025-01-01",
            ],
        )

        assert result.exit_code == 0, result.output
        assert '"statusCode": 200' in result.output

        show = runner.invoke(cli, ["show", "--db", str(db_path), "summons-1"])
        item = json.loads(show.output)
        assert item["lag_days"] == 9

    def test_run_with_payload_file(
        self,
        runner: CliRunner,
        db_path: Path,
        record_file: Path,
        server_url: str,
        tmp_path: Path,
    ) -> None:
        """run shall accept a change-stream payload file."""
        _put(runner, db_path, record_file)
        payload = tmp_path / "event.json"
        payload.write_text(
            json.dumps(
                {
                    "Records": [
                        {
                            "dynamodb": {
                                "NewImage": {
                                    "id": {"S": "summons-1"},
                                    "summons_number": {"S": "000954041L"},
                                    "video_link": {
                                        "S": f"{server_url}/video/label"
                                    },
                                }
                            }
                        }
                    ]
                }
            )
        )

        result = runner.invoke(
            cli, ["run", "--db", str(db_path), "--payload", str(payload)]
        )

        assert result.exit_code == 0, result.output
        assert "video_created_date" in result.output

    def test_run_failure_exits_nonzero(
        self, runner: CliRunner, db_path: Path
    ) -> None:
        """A failed invocation shall exit with status 1."""
        result = runner.invoke(
            cli, ["run", "--db", str(db_path), "--summons-number", "1"]
        )

        assert result.exit_code == 1
        assert '"statusCode": 500' in result.output
        assert "input_error" in result.output

    def test_run_skips_enriched_record(
        self, runner: CliRunner, db_path: Path, tmp_path: Path
    ) -> None:
        """run shall report a skip for a record that already has OCR data."""
        path = tmp_path / "enriched.json"
        path.write_text(
            json.dumps(summons_item(violation_narrative="Vehicle idling"))
        )
        _put(runner, db_path, path)

        result = runner.invoke(
            cli,
            [
                "run",
                "--db",
                str(db_path),
                "--summons-id",
                "summons-1",
                "--summons-number",
                "000954041L",
            ],
        )

        assert result.exit_code == 0
        assert "skipped" in result.output
