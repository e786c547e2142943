"""Decoding of the form data POSTed by Ecowitt stations.

The station sends an ``application/x-www-form-urlencoded`` body such as::

    PASSKEY=...&stationtype=EasyWeatherPro_V5.1.3&dateutc=2024-06-16+16:32:08&tempf=67.8&...

Field names are matched case-insensitively against ``FIELDS``, which also
holds the coercer for every slot of ``RawPayload``.
"""

import logging
import math
import re
from collections.abc import Callable, Mapping, Sequence
from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict

from ecowitt_collector.errors import FieldError, PayloadDecodeError

logger = logging.getLogger("Payload")

# Layout of the "dateutc" field. No timezone is sent; it is always UTC.
DATETIME_LAYOUT = "%Y-%m-%d %H:%M:%S"

_INTEGER_RE = re.compile(r"[+-]?[0-9]+")
_DECIMAL_RE = re.compile(r"[+-]?(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")
_DATETIME_RE = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2} [0-9]{2}:[0-9]{2}:[0-9]{2}")


class RawPayload(BaseModel):
    """A station report in the station's own (imperial) units.

    Every field is optional: ``None`` means the station did not send it.
    """

    model_config = ConfigDict(frozen=True)

    # MD5 of the station MAC address (uppercase). Opaque.
    passkey: str | None = None

    # Station firmware, e.g. EasyWeatherPro_V5.1.6
    stationtype: str | None = None
    # e.g. WS2900_V2.02.03
    model: str | None = None
    # Radio band, e.g. 868M
    freq: str | None = None

    dateutc: datetime | None = None

    runtime: int | None = None  # seconds
    heap: int | None = None
    interval: int | None = None  # seconds

    # Pressure (inHg)
    baromabsin: float | None = None
    baromrelin: float | None = None

    # Rain (in)
    dailyrainin: float | None = None
    eventrainin: float | None = None
    hourlyrainin: float | None = None
    monthlyrainin: float | None = None
    rainratein: float | None = None  # in/h
    totalrainin: float | None = None
    weeklyrainin: float | None = None
    yearlyrainin: float | None = None

    # Temperature (F)
    tempf: float | None = None
    tempinf: float | None = None

    # Humidity (%)
    humidity: int | None = None
    humidityin: int | None = None

    # Wind
    winddir: int | None = None  # degrees
    windspeedmph: float | None = None
    windgustmph: float | None = None
    maxdailygust: float | None = None

    solarradiation: float | None = None  # W/m2
    uv: float | None = None

    # Vapour pressure deficit (inHg)
    vpd: float | None = None

    # 0 = OK, anything else = low (vendor convention, unconfirmed)
    wh65batt: float | None = None


def parse_float(value: str) -> float:
    if not _DECIMAL_RE.fullmatch(value):
        raise ValueError("not a base-10 decimal")
    result = float(value)
    if not math.isfinite(result):
        raise ValueError("not a finite number")
    return result


def parse_int(value: str) -> int:
    if not _INTEGER_RE.fullmatch(value):
        raise ValueError("not a base-10 integer")
    return int(value)


def parse_str(value: str) -> str:
    return value


def parse_datetime(value: str) -> datetime:
    # strptime alone accepts single-digit fields
    if not _DATETIME_RE.fullmatch(value):
        raise ValueError(f"does not match {DATETIME_LAYOUT!r}")
    return datetime.strptime(value, DATETIME_LAYOUT).replace(tzinfo=UTC)


Coercer = Callable[[str], object]

# Lowercase wire name -> (RawPayload attribute, coercer)
FIELDS: dict[str, tuple[str, Coercer]] = {
    "passkey": ("passkey", parse_str),
    "stationtype": ("stationtype", parse_str),
    "model": ("model", parse_str),
    "freq": ("freq", parse_str),
    "dateutc": ("dateutc", parse_datetime),
    "runtime": ("runtime", parse_int),
    "heap": ("heap", parse_int),
    "interval": ("interval", parse_int),
    "baromabsin": ("baromabsin", parse_float),
    "baromrelin": ("baromrelin", parse_float),
    "dailyrainin": ("dailyrainin", parse_float),
    "eventrainin": ("eventrainin", parse_float),
    "hourlyrainin": ("hourlyrainin", parse_float),
    "monthlyrainin": ("monthlyrainin", parse_float),
    "rainratein": ("rainratein", parse_float),
    "totalrainin": ("totalrainin", parse_float),
    "weeklyrainin": ("weeklyrainin", parse_float),
    "yearlyrainin": ("yearlyrainin", parse_float),
    "tempf": ("tempf", parse_float),
    "tempinf": ("tempinf", parse_float),
    "humidity": ("humidity", parse_int),
    "humidityin": ("humidityin", parse_int),
    "winddir": ("winddir", parse_int),
    "windspeedmph": ("windspeedmph", parse_float),
    "windgustmph": ("windgustmph", parse_float),
    "maxdailygust": ("maxdailygust", parse_float),
    "solarradiation": ("solarradiation", parse_float),
    "uv": ("uv", parse_float),
    "vpd": ("vpd", parse_float),
    "wh65batt": ("wh65batt", parse_float),
}


class PayloadDecoder:
    """Maps form fields onto a RawPayload.

    Args:
        allow_unknown_fields: when True, keys that match no RawPayload field
            are skipped instead of failing the whole report. Useful when a
            firmware update starts sending new sensors.
    """

    def __init__(self, allow_unknown_fields: bool = False) -> None:
        self.allow_unknown_fields = allow_unknown_fields

    def decode(self, values: Mapping[str, Sequence[str] | str]) -> RawPayload:
        """Decode a mapping of field name to form values.

        Only the first value of every key is used. All fields are checked
        before failing, so a single ``PayloadDecodeError`` reports every bad
        field in the request.

        Raises:
            PayloadDecodeError: on unknown keys (in strict mode), keys without
                values, or values that cannot be coerced.
        """
        decoded: dict[str, object] = {}
        errors: list[FieldError] = []

        for key, raw in values.items():
            entry = FIELDS.get(key.lower())
            if entry is None:
                if self.allow_unknown_fields:
                    logger.debug(f"Ignoring unknown field {key!r}")
                    continue
                errors.append(FieldError(key, None, "unknown field"))
                continue

            if isinstance(raw, str):
                raw = [raw]
            if not raw:
                errors.append(FieldError(key, None, "no value"))
                continue

            attr, coerce = entry
            value = raw[0]
            try:
                decoded[attr] = coerce(value)
            except ValueError as e:
                errors.append(FieldError(key, value, str(e)))

        if errors:
            raise PayloadDecodeError(errors)

        return RawPayload(**decoded)


def decode_payload(
    values: Mapping[str, Sequence[str] | str], allow_unknown_fields: bool = False
) -> RawPayload:
    """Shortcut for ``PayloadDecoder(allow_unknown_fields).decode(values)``."""
    return PayloadDecoder(allow_unknown_fields).decode(values)
