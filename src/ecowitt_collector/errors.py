"""Exception classes raised while ingesting station reports."""

from dataclasses import dataclass


class CollectorError(Exception):
    """Base class for all collector errors."""


@dataclass(frozen=True)
class FieldError:
    """A single field that could not be decoded."""

    field: str
    value: str | None
    reason: str

    def __str__(self) -> str:
        if self.value is None:
            return f"{self.field}: {self.reason}"
        return f"{self.field}={self.value!r}: {self.reason}"


class PayloadDecodeError(CollectorError):
    """Raised when one or more form fields cannot be mapped onto a RawPayload.

    Every failing field is kept in ``errors``; ``field`` and ``value`` refer
    to the first one encountered.
    """

    def __init__(self, errors: list[FieldError]) -> None:
        if not errors:
            raise ValueError("PayloadDecodeError needs at least one field error")
        super().__init__("; ".join(str(e) for e in errors))
        self.errors = errors

    @property
    def field(self) -> str:
        return self.errors[0].field

    @property
    def value(self) -> str | None:
        return self.errors[0].value

    @property
    def fields(self) -> list[str]:
        return [e.field for e in self.errors]


class NormalizationError(CollectorError):
    """Raised when a value falls outside the domain of a normalization step."""

    def __init__(self, message: str, value: object = None) -> None:
        super().__init__(message)
        self.value = value


class PersistenceError(CollectorError):
    """Raised when an observation could not be written to the database."""


class WriteTimeoutError(PersistenceError):
    """Raised when an insert ran past the write timeout and was rolled back."""
