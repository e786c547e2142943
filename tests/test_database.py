import time
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock, patch

import pytest
from ecowitt_collector.config import DatabaseSettings
from ecowitt_collector.database import ObservationStore, observation_table
from ecowitt_collector.errors import PersistenceError, WriteTimeoutError
from ecowitt_collector.models import WeatherObservation
from sqlalchemy import event, select
from sqlalchemy.exc import OperationalError


def test_table_columns():
    table = observation_table("weather")
    assert table.schema is None
    assert [c.name for c in table.columns] == list(WeatherObservation().to_row())


def test_table_with_schema():
    table = observation_table("station.readings")
    assert table.schema == "station"
    assert table.name == "readings"


def test_connect_creates_table(store):
    """Test that connect creates the observations table."""
    assert store.connected
    with store.engine.connect() as conn:
        assert conn.execute(select(store.table)).all() == []


def test_save_observation(store):
    """Test saving one observation."""
    obs = WeatherObservation(
        passkey="SECRET",
        timestamp=datetime(2024, 6, 16, 16, 32, 8, tzinfo=UTC),
        station_type="EasyWeatherPro_V5.1.3",
        interval=timedelta(seconds=60),
        outdoor_temperature=19.5,
        wind_direction=106,
        wind_speed=0.1,
    )

    store.save(obs)

    with store.engine.connect() as conn:
        rows = conn.execute(select(store.table)).mappings().all()

    assert len(rows) == 1
    row = rows[0]
    assert row["station"] == "EasyWeatherPro_V5.1.3"
    assert row["temperature_outdoor"] == 19.5
    assert row["interval"] == 60.0
    assert row["wind_direction"] == 106
    assert row["humidity_outdoor"] is None
    assert "SECRET" not in [str(v) for v in row.values()]


def test_save_one_row_per_observation(store):
    for _ in range(3):
        store.save(WeatherObservation(uv=2.0))

    with store.engine.connect() as conn:
        assert len(conn.execute(select(store.table)).all()) == 3


def test_save_not_connected(db_settings):
    store = ObservationStore(db_settings)
    with pytest.raises(PersistenceError):
        store.save(WeatherObservation())


def test_save_failure_is_wrapped(store):
    store.engine = MagicMock()
    store.engine.begin.side_effect = OperationalError("INSERT", params=None, orig=Exception())
    with pytest.raises(PersistenceError):
        store.save(WeatherObservation())



def test_slow_insert_is_rolled_back(db_settings):
    """Test that an insert past the write timeout is not committed."""
    store = ObservationStore(db_settings.model_copy(update={"write_timeout": 0.05}))
    assert store.connect()

    def slow_execute(*args):
        time.sleep(0.2)

    event.listen(store.engine, "before_cursor_execute", slow_execute)
    try:
        with pytest.raises(WriteTimeoutError):
            store.save(WeatherObservation(uv=2.0))
    finally:
        event.remove(store.engine, "before_cursor_execute", slow_execute)

    with store.engine.connect() as conn:
        assert conn.execute(select(store.table)).all() == []
    store.close()


def test_cancelled_statement_is_a_timeout(store):
    orig = Exception("canceling statement due to statement timeout")
    orig.pgcode = "57014"
    store.engine = MagicMock()
    store.engine.begin.side_effect = OperationalError("INSERT", params=None, orig=orig)
    with pytest.raises(WriteTimeoutError):
        store.save(WeatherObservation())


@patch("ecowitt_collector.database.create_engine")
def test_postgres_statement_timeout(mock_create):
    """Test that PostgreSQL connections carry the write timeout as statement_timeout."""
    store = ObservationStore(DatabaseSettings(write_timeout=2.5, create_table=False))
    assert store.connect() is True
    kwargs = mock_create.call_args.kwargs
    assert kwargs["connect_args"] == {"options": "-c statement_timeout=2500"}
    assert kwargs["pool_pre_ping"] is True


@patch("ecowitt_collector.database.create_engine")
def test_sqlite_has_no_statement_timeout(mock_create, db_settings):
    store = ObservationStore(db_settings.model_copy(update={"create_table": False}))
    assert store.connect() is True
    assert "connect_args" not in mock_create.call_args.kwargs

def test_close(store):
    store.close()
    assert not store.connected
    # Closing twice is harmless
    store.close()


@patch("ecowitt_collector.database.time.sleep")
@patch("ecowitt_collector.database.create_engine")
def test_connection_failure(mock_create, mock_sleep):
    """Test retrying and giving up on connection failures."""
    mock_engine = MagicMock()
    mock_engine.begin.side_effect = OperationalError("Connection refused", params=None, orig=None)
    mock_create.return_value = mock_engine

    store = ObservationStore(DatabaseSettings(connect_retries=3, retry_delay=1.5))

    assert store.connect() is False
    assert not store.connected
    assert mock_create.call_count == 3
    # Every failed engine is released
    assert mock_engine.dispose.call_count == 3
    # No sleep after the last attempt
    assert mock_sleep.call_count == 2
    mock_sleep.assert_called_with(1.5)


def test_no_table_creation(db_settings):
    settings = db_settings.model_copy(update={"create_table": False})
    store = ObservationStore(settings)
    assert store.connect() is True
    with pytest.raises(PersistenceError):
        store.save(WeatherObservation())
    store.close()
