"""Inbound domain events consumed by the documents service."""

import re
from dataclasses import dataclass, fields
from datetime import date, datetime
from typing import Any, Dict, Optional
from uuid import UUID

# .NET publishers emit 7 fractional digits, datetime.fromisoformat takes 6
_EXTRA_FRACTION = re.compile(r"(\.\d{6})\d+")


@dataclass(frozen=True)
class Event:
    """Base class for all domain events."""
    pass


@dataclass(frozen=True)
class AppointmentResultCreated(Event):
    """Event raised by the appointments service when a result is created."""
    result_id: UUID
    date: datetime
    service_name: str
    specialization_name: str
    patient_full_name: str
    patient_birth_date: date
    doctor_full_name: str
    complaints: str
    conclusion: str
    recommendations: str
    patient_email: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AppointmentResultCreated":
        """
        Build the event from its JSON payload.

        Accepts the camelCase names used on the wire as well as the
        snake_case attribute names.

        Raises:
            ValueError: If a required field is missing or malformed
        """
        values = {}
        for f in fields(cls):
            wire_name = _camel_case(f.name)
            value = data.get(wire_name, data.get(f.name))
            if value is None:
                if f.name == "patient_email":
                    values[f.name] = None
                    continue
                raise ValueError(f"Missing field '{wire_name}' in appointment result event")
            values[f.name] = value

        for name in ("service_name", "specialization_name", "patient_full_name",
                     "doctor_full_name", "complaints", "conclusion", "recommendations"):
            if not isinstance(values[name], str):
                raise ValueError(f"Field '{_camel_case(name)}' must be a string")

        return cls(
            result_id=UUID(str(values.pop("result_id"))),
            date=_parse_datetime(values.pop("date")),
            patient_birth_date=_parse_datetime(values.pop("patient_birth_date")).date(),
            **values,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the camelCase JSON payload published on the wire."""
        data = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, UUID):
                value = str(value)
            elif isinstance(value, (datetime, date)):
                value = value.isoformat()
            data[_camel_case(f.name)] = value
        return data


def _camel_case(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _parse_datetime(value) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if not isinstance(value, str):
        raise ValueError(f"Invalid timestamp: {value!r}")
    return datetime.fromisoformat(_EXTRA_FRACTION.sub(r"\1", value))
