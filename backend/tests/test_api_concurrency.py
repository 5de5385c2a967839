"""Concurrency-focused tests exercising the API's per-request isolation."""

from concurrent.futures import ThreadPoolExecutor, as_completed
from fastapi.testclient import TestClient
from backend.app.main import app
from backend.stepviz.examples import EXAMPLES

client = TestClient(app)


def _post_run(payload):
    r = client.post("/run", json=payload)
    return r.status_code, r.json()


def test_concurrent_runs_isolated():
    # Each job has its own expected final state; shared state would mix them
    jobs = [
        ({"code": EXAMPLES["array"]}, ("sum", 25)),
        ({"code": EXAMPLES["factorial"]}, ("factorial", 120)),
        ({"code": "let x = 1;\nfor (let i = 0; i < 50; i++) {\n  x = x + 1;\n}", "settings": {"max_loop": 10}}, None),
    ]

    results = []
    with ThreadPoolExecutor(max_workers=3) as ex:
        futures = {ex.submit(_post_run, payload): expected for payload, expected in jobs}
        for fut in as_completed(futures):
            results.append((fut.result(), futures[fut]))

    assert len(results) == 3
    for (code, body), expected in results:
        assert code == 200
        assert 'output' in body and 'snapshots' in body and 'errors' in body
        if expected is None:
            assert body["errors"]["code"] == "LOOP_LIMIT"
        else:
            name, value = expected
            final = {v["name"]: v["value"] for v in body["variables"]}
            assert final[name] == value
            assert body["errors"] is None
