import pytest

from backend import db


@pytest.fixture(autouse=True)
def isolated_db(tmp_path, monkeypatch):
    # every test gets its own sqlite file so runs never touch the default DB
    monkeypatch.setenv("STEPVIZ_DB_PATH", str(tmp_path / "stepviz.db"))
    db.init_db()
