import logging
import time

from sqlalchemy import (
    Column,
    DateTime,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    create_engine,
)
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.schema import CreateSchema

from ecowitt_collector.config import DatabaseSettings
from ecowitt_collector.errors import PersistenceError, WriteTimeoutError
from ecowitt_collector.models import WeatherObservation

logger = logging.getLogger("Database")

# PostgreSQL SQLSTATE for a statement cancelled by statement_timeout
_QUERY_CANCELED = "57014"


def observation_table(name: str) -> Table:
    """Build the observations table. ``name`` may be ``schema.table``."""
    schema, _, table_name = name.rpartition(".")
    return Table(
        table_name,
        MetaData(),
        Column("time", DateTime(timezone=True)),
        Column("station", String(255)),
        Column("pressure_absolute", Float),
        Column("pressure_relative", Float),
        Column("frequency", String(50)),
        Column("heap", Integer),
        Column("daily_rain", Float),
        Column("event_rain", Float),
        Column("hourly_rain", Float),
        Column("monthly_rain", Float),
        Column("rain_rate", Float),
        Column("total_rain", Float),
        Column("weekly_rain", Float),
        Column("yearly_rain", Float),
        Column("humidity_outdoor", Integer),
        Column("humidity_indoor", Integer),
        Column("interval", Float),  # seconds
        Column("model", String(255)),
        Column("runtime", Integer),
        Column("solar_radiation", Float),
        Column("station_type", String(255)),
        Column("temperature_outdoor", Float),
        Column("temperature_indoor", Float),
        Column("uv", Float),
        Column("battery", Float),
        Column("wind_max_daily_gust", Float),
        Column("wind_direction", Integer),
        Column("wind_gust", Float),
        Column("wind_speed", Float),
        Column("vpd", Float),
        schema=schema or None,
    )


class ObservationStore:
    """Writes WeatherObservations to the configured table, one row each."""

    def __init__(self, settings: DatabaseSettings) -> None:
        self.settings = settings
        self.table = observation_table(settings.table)
        self.engine: Engine | None = None

    @property
    def connected(self) -> bool:
        return self.engine is not None

    def _engine_options(self) -> dict:
        options: dict = {"pool_pre_ping": True}
        if make_url(self.settings.dsn).get_backend_name() == "postgresql":
            # Let the server cancel inserts that run past the write timeout
            timeout_ms = int(self.settings.write_timeout * 1000)
            options["connect_args"] = {"options": f"-c statement_timeout={timeout_ms}"}
        return options

    def connect(self) -> bool:
        """Create the engine and, if configured, the table.

        Retries ``connect_retries`` times before giving up.
        """
        retries = self.settings.connect_retries
        while retries > 0:
            engine = None
            try:
                engine = create_engine(self.settings.dsn, **self._engine_options())

                with engine.begin() as conn:
                    if self.settings.create_table:
                        if self.table.schema:
                            conn.execute(CreateSchema(self.table.schema, if_not_exists=True))
                        self.table.create(conn, checkfirst=True)

                self.engine = engine
                logger.info(f"Database connected, storing into '{self.settings.table}'.")
                return True
            except SQLAlchemyError as e:
                if engine is not None:
                    engine.dispose()
                retries -= 1
                logger.error(f"Database connection failed ({retries} retries left): {e}")
                if retries > 0:
                    time.sleep(self.settings.retry_delay)

        return False

    def save(self, observation: WeatherObservation) -> None:
        """Insert one observation.

        An insert that runs past ``write_timeout`` is rolled back, never
        committed late.

        Raises:
            WriteTimeoutError: if the insert ran past the write timeout.
            PersistenceError: if the store is not connected or the insert fails.
        """
        if self.engine is None:
            raise PersistenceError("Database not connected")

        timeout = self.settings.write_timeout
        started = time.monotonic()
        try:
            with self.engine.begin() as conn:
                conn.execute(self.table.insert().values(**observation.to_row()))
                elapsed = time.monotonic() - started
                if elapsed > timeout:
                    raise WriteTimeoutError(
                        f"Insert took {elapsed:.3f}s (limit {timeout}s), rolled back"
                    )
        except OperationalError as e:
            if getattr(e.orig, "pgcode", None) == _QUERY_CANCELED:
                raise WriteTimeoutError(f"Insert cancelled after {timeout}s: {e}") from e
            raise PersistenceError(f"Failed to store observation: {e}") from e
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to store observation: {e}") from e

    def close(self) -> None:
        if self.engine is not None:
            self.engine.dispose()
            self.engine = None

