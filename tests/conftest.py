import os
import sys
from urllib.parse import parse_qs

import pytest

# Add src to pythonpath
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "../src")))

from ecowitt_collector.config import DatabaseSettings, Settings  # noqa: E402
from ecowitt_collector.database import ObservationStore  # noqa: E402

# A real report as sent by a WS2900 (passkey regenerated)
SAMPLE_QUERY = (
    "PASSKEY=LA5ZAQUAHNGEDOOW0DAEROOV8VEZIETI&stationtype=EasyWeatherPro_V5.1.3"
    "&runtime=1240&dateutc=2024-06-16+16:32:08&tempinf=70.0&humidityin=48"
    "&baromrelin=29.920&baromabsin=29.565&tempf=67.8&humidity=47&winddir=196"
    "&windspeedmph=0.22&windgustmph=1.12&maxdailygust=4.47&solarradiation=142.55"
    "&uv=1&rainratein=0.000&eventrainin=0.000&hourlyrainin=0.000&dailyrainin=0.000"
    "&weeklyrainin=0.000&monthlyrainin=0.000&yearlyrainin=0.000&totalrainin=0.000"
    "&vpd=0.153&wh65batt=0&freq=868M&model=WS2900_V2.02.03&interval=60"
)


@pytest.fixture
def sample_query() -> str:
    return SAMPLE_QUERY


@pytest.fixture
def sample_form() -> dict[str, list[str]]:
    """The sample report as parsed form data."""
    return parse_qs(SAMPLE_QUERY, keep_blank_values=True)


@pytest.fixture
def db_settings(tmp_path) -> DatabaseSettings:
    """SQLite database in a temporary directory."""
    return DatabaseSettings(
        dsn=f"sqlite:///{tmp_path / 'weather.db'}",
        table="weather",
        connect_retries=1,
        retry_delay=0,
    )


@pytest.fixture
def settings(db_settings, monkeypatch) -> Settings:
    """Settings isolated from the developer's environment."""
    for key in list(os.environ):
        if key.startswith("ECOWITT_"):
            monkeypatch.delenv(key)
    return Settings(database=db_settings)


@pytest.fixture
def store(db_settings):
    """A connected ObservationStore."""
    s = ObservationStore(db_settings)
    assert s.connect() is True
    yield s
    s.close()
