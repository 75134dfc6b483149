import json

import pytest
from langchain_core.language_models import FakeListLLM

import main as cli
from coaching_agent import CoachingAgent, REPORT_NO_DATA
from delimited_text import parse_rows
from serialization import LEDGER_HEADER


@pytest.fixture
def data_dir(tmp_path, monkeypatch):
    for name in ("REMOTE_URL", "CLOUD_FILE", "WORKSPACE_ID", "CLOUD_ENABLED"):
        monkeypatch.delenv(f"AUDIT_HUB_{name}", raising=False)
    path = tmp_path / "data"
    monkeypatch.setenv("AUDIT_HUB_DATA_DIR", str(path))
    return path


@pytest.fixture
def sheet_file(tmp_path, make_row, sheet_text):
    path = tmp_path / "sheet.csv"
    path.write_text(
        sheet_text(make_row(name="Ana", scores={"s1-1": "5"}), make_row(name="Ben", scores={"s2-8": "4"}), make_row(name="")),
        encoding="utf-8",
    )
    return path


def _json_after_summary(out):
    summary, payload = out.split("\n", 1)
    return summary, json.loads(payload)


def test_import_command(data_dir, sheet_file, capsys):
    assert cli.main(["import", str(sheet_file)]) == 0

    summary, payload = _json_after_summary(capsys.readouterr().out)
    assert summary.startswith("Imported 2 new records.")
    assert payload["added"] == 2
    assert payload["skip_reasons"] == {"missing_staff_name": 1}
    assert (data_dir / "sessions.json").is_file()


def test_import_with_stable_ids_twice(data_dir, sheet_file, capsys):
    cli.main(["import", "--stable-ids", str(sheet_file)])
    capsys.readouterr()
    cli.main(["import", "--stable-ids", str(sheet_file)])

    summary, payload = _json_after_summary(capsys.readouterr().out)
    assert payload["added"] == 0
    assert summary.startswith("Imported 0 new records, 2 already present.")


def test_dashboard_command(data_dir, sheet_file, capsys):
    cli.main(["import", str(sheet_file)])
    capsys.readouterr()

    assert cli.main(["dashboard"]) == 0

    payload = json.loads(capsys.readouterr().out)
    assert payload["team"]["total_audits"] == 2
    assert payload["health"]["compliance"] == 100
    assert set(payload["series_averages"]) == {"S1", "S2", "S3", "S4", "S5"}
    assert len(payload["trend"]) == 2


def test_sanitize_command_after_lowering_standard(data_dir, sheet_file, tmp_path, capsys):
    from rubric import DEFAULT_RUBRIC
    from rubric_loader import RubricDefinition, dump_rubric

    cli.main(["import", str(sheet_file)])
    lowered = dump_rubric(
        RubricDefinition("Lowered", "", DEFAULT_RUBRIC.with_max_points({"s2-8": 2})), tmp_path / "lowered.yaml"
    )
    assert cli.main(["rubric", "load", str(lowered)]) == 0
    capsys.readouterr()

    assert cli.main(["sanitize", "--dry-run"]) == 0
    assert json.loads(capsys.readouterr().out) == {"total": 2, "problematic": 1, "compliance": 50}

    assert cli.main(["sanitize"]) == 0
    assert capsys.readouterr().out.strip() == "Sanitized 1 records. Hub compliance is now 100%."


def test_rubric_load_rejects_layout_mismatch(data_dir, tmp_path, capsys):
    path = tmp_path / "tiny.json"
    path.write_text(json.dumps([{"id": "a", "category": "S1: A", "task": "Smile"}]), encoding="utf-8")

    assert cli.main(["rubric", "load", str(path)]) == 1
    assert "layout" in capsys.readouterr().err


def test_rubric_show(data_dir, capsys):
    assert cli.main(["rubric", "show"]) == 0
    assert len(json.loads(capsys.readouterr().out)) == 63


def test_export_command(data_dir, sheet_file, capsys):
    assert cli.main(["export"]) == 1
    assert "No data" in capsys.readouterr().err

    cli.main(["import", str(sheet_file)])
    capsys.readouterr()
    assert cli.main(["export"]) == 0

    rows = parse_rows(capsys.readouterr().out)
    assert rows[0] == LEDGER_HEADER
    assert sorted(row[2] for row in rows[1:]) == ["Ana", "Ben"]


def test_report_command(data_dir, sheet_file, monkeypatch, capsys):
    monkeypatch.setattr(cli, "build_agent", lambda config: CoachingAgent(llm=FakeListLLM(responses=["### EXECUTIVE SUMMARY"])))

    cli.main(["report"])
    assert capsys.readouterr().out.strip() == REPORT_NO_DATA

    cli.main(["import", str(sheet_file)])
    capsys.readouterr()
    cli.main(["report"])
    assert capsys.readouterr().out.strip() == "### EXECUTIVE SUMMARY"


def test_sync_command(data_dir, tmp_path, monkeypatch, make_session, capsys):
    assert cli.main(["sync"]) == 1

    from cloud_sync import FileSessionStore
    from sessions import DEFAULT_WORKSPACE_ID

    cloud_file = tmp_path / "cloud.json"
    FileSessionStore(cloud_file).push(make_session("remote-1"), DEFAULT_WORKSPACE_ID)
    monkeypatch.setenv("AUDIT_HUB_CLOUD_FILE", str(cloud_file))
    capsys.readouterr()

    assert cli.main(["sync"]) == 0
    assert capsys.readouterr().out.strip() == "Synchronized 1 new records."


def test_config_workspace_seeds_hub(data_dir, monkeypatch):
    monkeypatch.setenv("AUDIT_HUB_WORKSPACE_ID", "WS-CLI")
    hub = cli.build_hub(cli.load_hub_config())
    assert hub.cloud.workspace_id == "WS-CLI"


def test_remote_store_uses_remote_timeout():
    remote = cli.build_remote(cli.HubConfig(remote_url="https://hub.example", remote_timeout=7.5, llm_timeout=90))
    assert remote.timeout == 7.5
