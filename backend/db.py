import json
import os
import sqlite3
from pathlib import Path
from typing import Any, Dict, List, Optional

DEFAULT_DB_PATH = Path(__file__).parent / 'stepviz.db'


def db_path() -> Path:
    """Return the sqlite file in use; `STEPVIZ_DB_PATH` overrides the default.

    Read on every call so tests can point the app at a temporary file after
    import.
    """
    return Path(os.environ.get('STEPVIZ_DB_PATH') or DEFAULT_DB_PATH)


def get_conn():
    """Return a new sqlite3 connection configured to return rows as dict-like objects.

    We create a fresh connection per-call. For the small scale of this project
    this simple approach is fine.
    """
    conn = sqlite3.connect(str(db_path()))
    conn.row_factory = sqlite3.Row
    return conn


def init_db():
    """Ensure the database file and required tables exist.

    This is idempotent and safe to call at application startup.
    """
    db_path().parent.mkdir(parents=True, exist_ok=True)
    conn = get_conn()
    cur = conn.cursor()
    cur.execute('''
    CREATE TABLE IF NOT EXISTS Scripts (
      script_id INTEGER PRIMARY KEY,
      title TEXT NOT NULL,
      code_text TEXT NOT NULL,
      created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    ''')
    cur.execute('''
    CREATE TABLE IF NOT EXISTS Runs (
      run_id INTEGER PRIMARY KEY,
      script_id INTEGER NULL,
      status TEXT NOT NULL,
      snapshots INTEGER,
      duration_ms INTEGER,
      error TEXT,
      created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    ''')
    conn.commit()
    conn.close()


def save_script(title: str, code_text: str) -> int:
    """Persist a script's text and return the new script_id."""
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        'INSERT INTO Scripts (title, code_text) VALUES (?, ?)',
        (title, code_text),
    )
    script_id = cur.lastrowid
    conn.commit()
    conn.close()
    return script_id


def list_scripts() -> List[Dict[str, Any]]:
    """Return saved scripts (id, title, created_at), newest first."""
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        'SELECT script_id, title, created_at FROM Scripts '
        'ORDER BY created_at DESC, script_id DESC'
    )
    rows = cur.fetchall()
    conn.close()
    return [dict(r) for r in rows]


def get_script(script_id: int) -> Optional[Dict[str, Any]]:
    """Fetch a single script by id, returning None if not found."""
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        'SELECT script_id, title, code_text, created_at FROM Scripts '
        'WHERE script_id = ?',
        (script_id,),
    )
    row = cur.fetchone()
    conn.close()
    return dict(row) if row else None


def save_run(
    script_id: Optional[int],
    status: str,
    snapshots: int,
    duration_ms: Optional[int],
    error: Optional[Dict[str, Any]] = None,
) -> int:
    """Persist a run summary and return its run_id.

    Only the outcome is stored, never the environment. The `error` dict (if
    any) is JSON-serialized into the `error` TEXT column.
    """
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        """
        INSERT INTO Runs (script_id, status, snapshots, duration_ms, error)
        VALUES (?, ?, ?, ?, ?)
        """,
        (
            script_id,
            status,
            snapshots,
            duration_ms,
            json.dumps(error) if error else None,
        ),
    )
    run_id = cur.lastrowid
    conn.commit()
    conn.close()
    return run_id


def list_runs(script_id: Optional[int] = None) -> List[Dict[str, Any]]:
    """List run rows, optionally filtering by script_id.

    Each returned dict has `error` parsed back into a dict (or None).
    """
    conn = get_conn()
    cur = conn.cursor()
    if script_id:
        cur.execute(
            (
                "SELECT run_id, script_id, status, snapshots, duration_ms, error,"
                " created_at FROM Runs WHERE script_id = ?"
                " ORDER BY created_at DESC, run_id DESC"
            ),
            (script_id,),
        )
    else:
        cur.execute(
            (
                "SELECT run_id, script_id, status, snapshots, duration_ms, error,"
                " created_at FROM Runs ORDER BY created_at DESC, run_id DESC"
            )
        )
    rows = cur.fetchall()
    conn.close()
    out = []
    for r in rows:
        d = dict(r)
        try:
            d['error'] = json.loads(d['error']) if d.get('error') else None
        except ValueError:
            # tolerate corrupt JSON in the DB
            d['error'] = None
        out.append(d)
    return out
