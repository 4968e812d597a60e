"""
Command-line entry point tests over a JSON data fixture.
"""

import json
import logging
from datetime import datetime, timedelta

import pytest

import main as cli


@pytest.fixture(autouse=True)
def restore_root_handlers():
    """main() attaches handlers to the root logger; detach them after each test."""
    root = logging.getLogger()
    before = list(root.handlers)
    level = root.level
    yield
    for handler in list(root.handlers):
        if handler not in before:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)


@pytest.fixture
def data_file(tmp_path):
    now = datetime.now()
    records = [
        {
            "tenant_id": f"t{i}",
            "segment": "device:mobile|page:product",
            "conversion_rate": rate,
            "sample_size": 100,
            "timestamp": (now - timedelta(days=1, minutes=j)).isoformat(),
        }
        for i, rate in enumerate([0.02, 0.03, 0.025, 0.018, 0.04])
        for j in range(10)
    ]
    created_at = now - timedelta(days=200)
    history = [
        {"type": kind, "value": value, "timestamp": (created_at + timedelta(days=30 * m + 1)).isoformat()}
        for m in range(6)
        for kind, value in (("revenue", 2000.0), ("conversion", 0.04))
    ]
    tenants = [
        {
            "tenant_id": f"peer_{i}",
            "created_at": created_at.isoformat(),
            "profile": {"category": "tech", "target_audience": "developers",
                        "geographic_focus": "global", "team_size": 4, "marketing_budget": 3000},
            "history": history,
        }
        for i in range(3)
    ]
    path = tmp_path / "data.json"
    path.write_text(json.dumps({"conversion_records": records, "tenants": tenants}))
    return str(path)


def run(tmp_path, data_file, *command):
    return cli.main(["--data", data_file, "--log-dir", str(tmp_path / "logs"), *command])


def test_insights_command(tmp_path, data_file, capsys):
    assert run(tmp_path, data_file, "insights", "--device", "mobile") == 0

    result = json.loads(capsys.readouterr().out)
    assert result["segment_key"] == "device:mobile"
    assert result["benchmark"]["participant_count"] == 5
    assert result["privacy_preserved"] is True


def test_insufficient_data_exit_code(tmp_path, data_file, capsys):
    assert run(tmp_path, data_file, "insights", "--device", "desktop") == 1

    result = json.loads(capsys.readouterr().out)
    assert result["code"] == "INSUFFICIENT_DATA"


def test_budget_command(tmp_path, data_file, capsys):
    assert run(tmp_path, data_file, "budget") == 0
    assert json.loads(capsys.readouterr().out) == {}


def test_predict_command(tmp_path, data_file, capsys):
    profile = tmp_path / "profile.json"
    profile.write_text(json.dumps({
        "category": "tech",
        "target_audience": "developers",
        "geographic_focus": "global",
        "content_strategy": "blog",
        "team_size": 4,
        "marketing_budget": 3000,
        "initial_products": ["a", "b"],
        "technical_expertise": "advanced",
    }))

    assert run(tmp_path, data_file, "predict", "--profile", str(profile)) == 0
    result = json.loads(capsys.readouterr().out)
    assert result["backend"] == "heuristic"
    assert sorted(result["similar_successful_tenants"]) == ["peer_0", "peer_1", "peer_2"]


def test_history_command_writes_csv(tmp_path, data_file):
    output = tmp_path / "history.csv"
    assert run(tmp_path, data_file, "history", "--segment", "general", "-o", str(output)) == 0
    assert output.read_text().splitlines()[0] == "segment_key,value,participant_count,confidence_level,created_at"


def test_missing_data_file(tmp_path):
    assert cli.main(["--data", str(tmp_path / "missing.json"), "--log-dir", str(tmp_path / "logs"), "budget"]) == 1


def test_invalid_config(tmp_path, data_file):
    config = tmp_path / "bad.ini"
    config.write_text("[privacy]\nnoise_level = 2.0\n")
    assert run(tmp_path, data_file, "--config", str(config), "budget") == 1


def test_log_file_written(tmp_path, data_file):
    run(tmp_path, data_file, "budget")
    assert list((tmp_path / "logs").glob("tenant_intelligence_*.log"))
