from datetime import datetime, timedelta
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ecowitt_collector.units import degrees_to_compass


class WeatherObservation(BaseModel):
    """
    Canonical, metric weather observation built from a station report.
    One field per RawPayload measurement; ``None`` where the station sent nothing.
    """

    model_config = ConfigDict(frozen=True)

    passkey: str | None = None
    timestamp: datetime | None = None

    station_type: str | None = None
    model: str | None = None
    frequency: str | None = None
    heap: int | None = None
    runtime: int | None = None
    interval: timedelta | None = None

    # hPa
    absolute_pressure: float | None = None
    relative_pressure: float | None = None
    vapour_pressure_deficit: float | None = None

    # mm (rate in mm/h)
    daily_rain: float | None = None
    event_rain: float | None = None
    hourly_rain: float | None = None
    monthly_rain: float | None = None
    rain_rate: float | None = None
    total_rain: float | None = None
    weekly_rain: float | None = None
    yearly_rain: float | None = None

    # Celsius
    outdoor_temperature: float | None = None
    indoor_temperature: float | None = None

    # Percent
    outdoor_humidity: int | None = None
    indoor_humidity: int | None = None

    # Degrees, offset-corrected
    wind_direction: int | None = Field(default=None, ge=0, lt=360)
    # m/s
    wind_speed: float | None = None
    wind_gust: float | None = None
    max_daily_gust: float | None = None

    solar_radiation: float | None = None
    uv: float | None = None
    battery_level: float | None = None

    def wind_direction_name(self) -> str | None:
        """16-point compass name of the wind direction."""
        if self.wind_direction is None:
            return None
        return degrees_to_compass(self.wind_direction)

    def to_row(self) -> dict[str, Any]:
        """Column values for the observations table.

        The passkey is deliberately not part of the row.
        """
        return {
            "time": self.timestamp,
            # Historically the station column carries the station type.
            "station": self.station_type,
            "pressure_absolute": self.absolute_pressure,
            "pressure_relative": self.relative_pressure,
            "frequency": self.frequency,
            "heap": self.heap,
            "daily_rain": self.daily_rain,
            "event_rain": self.event_rain,
            "hourly_rain": self.hourly_rain,
            "monthly_rain": self.monthly_rain,
            "rain_rate": self.rain_rate,
            "total_rain": self.total_rain,
            "weekly_rain": self.weekly_rain,
            "yearly_rain": self.yearly_rain,
            "humidity_outdoor": self.outdoor_humidity,
            "humidity_indoor": self.indoor_humidity,
            "interval": self.interval.total_seconds() if self.interval is not None else None,
            "model": self.model,
            "runtime": self.runtime,
            "solar_radiation": self.solar_radiation,
            "station_type": self.station_type,
            "temperature_outdoor": self.outdoor_temperature,
            "temperature_indoor": self.indoor_temperature,
            "uv": self.uv,
            "battery": self.battery_level,
            "wind_max_daily_gust": self.max_daily_gust,
            "wind_direction": self.wind_direction,
            "wind_gust": self.wind_gust,
            "wind_speed": self.wind_speed,
            "vpd": self.vapour_pressure_deficit,
        }
