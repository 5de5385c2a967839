import json

import pytest
from fastapi.testclient import TestClient

from backend.app.main import app
from backend.stepviz.examples import EXAMPLES


@pytest.fixture()
def client(tmp_path, monkeypatch):
    # point the app at a temporary sqlite file; startup creates the schema
    monkeypatch.setenv("STEPVIZ_DB_PATH", str(tmp_path / "stepviz_test.db"))
    with TestClient(app) as c:
        yield c


def test_run_returns_snapshots_and_log(client):
    r = client.post("/run", json={"code": EXAMPLES["array"]})
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "completed"
    assert body["output"] == "✓ Execution completed successfully"
    assert body["errors"] is None
    assert body["warnings"] == []
    final = {v["name"]: v["value"] for v in body["variables"]}
    assert final["sum"] == 25
    assert final["average"] == 5
    assert len([s for s in body["snapshots"] if s["event"] == "bind"]) == 5
    assert body["snapshots"][2]["array"]["cells"][0] == {"index": 0, "value": 5}
    assert body["log"][-1] == "✓ Execution completed!"
    assert isinstance(body["duration_ms"], int)


def test_run_failure_shape(client):
    body = client.post("/run", json={"code": "let a = 1;\nlet b = a + c;"}).json()
    assert body["status"] == "failed"
    assert body["errors"]["code"] == "RUNTIME_ERROR"
    assert body["errors"]["line"] == 2
    assert body["errors"]["context"]["line_text"] == "let b = a + c;"
    assert body["snapshots"][-1]["event"] == "failed"


def test_rejected_script_has_no_snapshots(client):
    body = client.post("/run", json={"code": "let done = True;"}).json()
    assert body["status"] == "failed"
    assert body["snapshots"] == []
    assert body["errors"]["code"] == "SYNTAX_REJECTED"


def test_stream_endpoint(client):
    r = client.post("/run/stream", json={"code": "let x = 2;\nlet y = x * 3;"})
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("application/x-ndjson")
    lines = [json.loads(line) for line in r.text.splitlines() if line]
    assert [item["event"] for item in lines[:-1]] == ["declare", "declare", "completed"]
    assert lines[-1] == {"outcome": {"status": "completed", "message": "✓ Execution completed successfully", "error": None}}


def test_save_and_run_and_stats(client):
    r = client.post("/save", json={"title": "sum", "code": EXAMPLES["array"]})
    assert r.status_code == 200
    sid = r.json()["script_id"]

    scripts = client.get("/scripts").json()
    assert any(s.get("script_id") == sid for s in scripts)

    s = client.get(f"/scripts/{sid}").json()
    assert s["code_text"] == EXAMPLES["array"]
    assert client.get("/scripts/9999").json() == {"error": "not found"}

    r = client.post("/run", json={"code": s["code_text"], "script_id": sid})
    assert r.json()["warnings"] == []
    client.post("/run", json={"code": "x = y;", "script_id": sid})

    runs = client.get(f"/stats?script_id={sid}").json()
    assert len(runs) == 2
    statuses = sorted(run["status"] for run in runs)
    assert statuses == ["completed", "failed"]
    failed = next(run for run in runs if run["status"] == "failed")
    assert failed["error"]["code"] == "RUNTIME_ERROR"
    assert all(run["snapshots"] >= 1 for run in runs)
