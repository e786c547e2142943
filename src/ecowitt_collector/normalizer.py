from datetime import timedelta

from ecowitt_collector.models import WeatherObservation
from ecowitt_collector.payload import RawPayload
from ecowitt_collector.units import DEFAULT_CONVERSIONS, ConversionTable, offset_degrees


class UnitNormalizer:
    """Turns a RawPayload into a metric WeatherObservation.

    Stateless apart from two constants fixed at construction: the wind
    direction offset compensating for how the sensor is mounted, and the
    conversion table. Safe to share between concurrent requests.
    """

    def __init__(
        self, wind_direction_offset: int = 0, conversions: ConversionTable = DEFAULT_CONVERSIONS
    ) -> None:
        self.wind_direction_offset = wind_direction_offset
        self.conversions = conversions

    def normalize(self, payload: RawPayload) -> WeatherObservation:
        c = self.conversions

        wind_direction = None
        if payload.winddir is not None:
            wind_direction = offset_degrees(payload.winddir, self.wind_direction_offset)

        interval = None
        if payload.interval is not None:
            interval = timedelta(seconds=payload.interval)

        return WeatherObservation(
            passkey=payload.passkey,
            timestamp=payload.dateutc,
            station_type=payload.stationtype,
            model=payload.model,
            frequency=payload.freq,
            heap=payload.heap,
            runtime=payload.runtime,
            interval=interval,
            absolute_pressure=c.pressure(payload.baromabsin),
            relative_pressure=c.pressure(payload.baromrelin),
            vapour_pressure_deficit=c.pressure(payload.vpd),
            daily_rain=c.length(payload.dailyrainin),
            event_rain=c.length(payload.eventrainin),
            hourly_rain=c.length(payload.hourlyrainin),
            monthly_rain=c.length(payload.monthlyrainin),
            rain_rate=c.length(payload.rainratein),
            total_rain=c.length(payload.totalrainin),
            weekly_rain=c.length(payload.weeklyrainin),
            yearly_rain=c.length(payload.yearlyrainin),
            outdoor_temperature=c.temperature(payload.tempf),
            indoor_temperature=c.temperature(payload.tempinf),
            outdoor_humidity=payload.humidity,
            indoor_humidity=payload.humidityin,
            wind_direction=wind_direction,
            wind_speed=c.speed(payload.windspeedmph),
            wind_gust=c.speed(payload.windgustmph),
            max_daily_gust=c.speed(payload.maxdailygust),
            solar_radiation=payload.solarradiation,
            uv=payload.uv,
            battery_level=payload.wh65batt,
        )
