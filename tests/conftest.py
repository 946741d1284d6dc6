import pytest
from datetime import datetime, timedelta
from dateutil import tz

from partmon.core.config import Settings
from partmon.database.connection import create_sqlite_engine
from partmon.database.report_store import ReportStore

@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "partmon_test.db")

@pytest.fixture
def report_store(db_path):
    store = ReportStore(create_sqlite_engine(db_path), tz.UTC)
    yield store
    store.close()

@pytest.fixture
def test_settings(db_path):
    return Settings(
        database_path=db_path,
        mqtt_server_address="tcp://localhost:1883",
        timezone="UTC",
        connect_attempts=2,
        connect_backoff_seconds=0,
    )

@pytest.fixture
def start_times():
    base = datetime(2026, 10, 19, 8, 0, 0)
    return [base + timedelta(minutes=15 * i) for i in range(3)]

@pytest.fixture
def mock_env_vars(monkeypatch):
    monkeypatch.setenv("DATABASE_PATH", "/tmp/partmon-env.db")
    monkeypatch.setenv("MQTT_SERVER_ADDRESS", "tcp://broker.local:1884")
    monkeypatch.setenv("APP_NAMESPACE", "plant7")
