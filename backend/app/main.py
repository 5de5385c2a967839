"""FastAPI application entrypoints for StepViz.

This module exposes HTTP endpoints used by the visualizer frontend and tests.
Handlers stay small: each run constructs a fresh `Engine` so no interpreter
state is shared between requests, and server-side caps are enforced so
clients cannot raise the engine's safety limits.
"""

import json
import logging
import os
import time
from typing import Any, Dict, Iterator, Optional

from fastapi import FastAPI, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from .. import db
from ..stepviz.engine import Engine
from ..stepviz.errors import SyntaxRejected
from ..stepviz.examples import EXAMPLES
from ..stepviz.validator import validate

logger = logging.getLogger(__name__)

app = FastAPI(title="StepViz API", version="0.1")


def _cap_settings(settings: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Enforce server-side safe caps for runtime tunables.

    A fresh `Engine()` supplies the ceilings; client values are applied up to
    those ceilings.
    """
    defaults = Engine()
    safe = {
        "max_steps": defaults.max_steps,
        "max_loop": defaults.max_loop,
    }
    if not settings:
        return safe
    caps = {}
    caps["max_steps"] = min(int(settings.get("max_steps", safe["max_steps"])), safe["max_steps"])
    caps["max_loop"] = min(int(settings.get("max_loop", safe["max_loop"])), safe["max_loop"])
    return caps


def _engine_for(settings: Optional[Dict[str, Any]]) -> Engine:
    capped = _cap_settings(settings or {})
    engine = Engine()
    engine.max_steps = capped["max_steps"]
    engine.max_loop = capped["max_loop"]
    return engine


@app.on_event('startup')
def startup():
    """Configure logging and initialize the database schema."""
    logging.basicConfig(level=os.environ.get("STEPVIZ_LOG_LEVEL", "INFO").upper())
    db.init_db()


class RunRequest(BaseModel):
    """Pydantic model for the `/run` and `/run/stream` request bodies.

    Fields:
        code: script source text.
        speed: optional pacing setting in [1, 100]; ignored by `/run`.
        settings: optional runtime tunables; capped server-side.
        script_id: optional id to associate this run with a saved script.
    """
    code: str
    speed: Optional[float] = None
    settings: Optional[Dict[str, Any]] = None
    script_id: Optional[int] = None


class ValidateRequest(BaseModel):
    code: str


@app.post("/validate")
async def validate_code(req: ValidateRequest):
    try:
        validate(req.code)
    except SyntaxRejected as e:
        return {
            "valid": False,
            "error": {"code": e.code, "message": str(e), "construct": e.construct, "hint": f"Use {e.suggestion}"},
        }
    return {"valid": True, "error": None}


@app.post("/run")
def run_code(req: RunRequest):
    """Run a script to completion without pacing and return every snapshot.

    Any unexpected exception is turned into a SERVER_ERROR response so callers
    receive a stable JSON shape. A run summary is persisted afterwards; a
    persistence failure only adds a warning.
    """
    start = time.time()
    try:
        result = _engine_for(req.settings).run(req.code)
    except Exception as e:
        logger.exception("run failed unexpectedly")
        return {
            "status": "failed",
            "output": "",
            "log": [],
            "variables": [],
            "snapshots": [],
            "warnings": [],
            "duration_ms": int((time.time() - start) * 1000),
            "errors": {"code": "SERVER_ERROR", "message": str(e)},
        }
    body = result.to_dict()
    body["warnings"] = []
    body["duration_ms"] = int((time.time() - start) * 1000)

    try:
        db.save_run(
            req.script_id,
            result.outcome.status,
            len(result.snapshots),
            body["duration_ms"],
            result.outcome.error,
        )
    except Exception as e:
        logger.warning("failed to persist run: %s", e)
        body["warnings"].append(f"Failed to persist run: {e}")
    return body


def _ndjson_stream(engine: Engine, code: str, speed: Optional[float]) -> Iterator[str]:
    stream = engine.stream(code, speed)
    try:
        while True:
            try:
                snap = next(stream)
            except StopIteration as stop:
                yield json.dumps({"outcome": stop.value.to_dict()}) + "\n"
                return
            yield json.dumps(snap.to_dict()) + "\n"
    finally:
        stream.close()


@app.post("/run/stream")
def run_code_stream(req: RunRequest):
    """Stream snapshots as newline-delimited JSON, paced by `speed`."""
    engine = _engine_for(req.settings)
    return StreamingResponse(
        _ndjson_stream(engine, req.code, req.speed),
        media_type="application/x-ndjson",
    )


class SaveScriptRequest(BaseModel):
    title: str
    code: str


@app.post('/save')
async def save_script(req: SaveScriptRequest):
    try:
        script_id = db.save_script(req.title, req.code)
    except Exception as e:
        return {'error': str(e)}
    return {'script_id': script_id}


@app.get('/scripts')
async def list_scripts():
    return db.list_scripts()


@app.get('/scripts/{script_id}')
async def get_script(script_id: int):
    s = db.get_script(script_id)
    if not s:
        return {'error': 'not found'}
    return s


@app.get('/stats')
async def list_stats(script_id: Optional[int] = None):
    return db.list_runs(script_id)


@app.get('/examples')
async def list_examples():
    return [{'name': name, 'code': code} for name, code in EXAMPLES.items()]


@app.get('/examples/{name}')
async def get_example(name: str):
    if name not in EXAMPLES:
        raise HTTPException(status_code=404, detail=f"Unknown example '{name}'")
    return {'name': name, 'code': EXAMPLES[name]}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="127.0.0.1", port=int(os.environ.get("STEPVIZ_PORT", "8000")))
