"""
Consultation Engine - Case Schema

The immutable case submitted for consultation.
"""

import hashlib
import json
import uuid
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

from consilium.models.enums import Urgency


# Core intake fields and their weight in the completeness score
CORE_FIELD_WEIGHTS: dict[str, float] = {
    "symptoms": 0.25,
    "primary_complaint": 0.20,
    "pain_level": 0.15,
    "duration": 0.10,
    "age": 0.10,
    "location": 0.10,
    "history": 0.10,
}

# Fields that identify a case for caching purposes, including every field
# the Router reads to set urgency
FINGERPRINT_FIELDS = (
    "symptoms",
    "pain_level",
    "location",
    "duration",
    "age",
    "primary_complaint",
    "severity",
    "red_flags",
    "prior_consultation_id",
    "reassessment_day",
)


def is_populated(value: Any) -> bool:
    """True when a structured field carries information (0 and False count)."""
    if value is None:
        return False
    if isinstance(value, (str, list, tuple, dict, set)):
        return len(value) > 0
    return True


class Case(BaseModel):
    """A case submitted for consultation. Never modified after submission."""

    model_config = ConfigDict(frozen=True, use_enum_values=True)

    case_id: str = Field(default_factory=lambda: str(uuid.uuid4())[:8])
    structured_fields: dict[str, Any] = Field(
        default_factory=dict,
        description="Partial intake data (symptoms, pain_level, age, ...)",
    )
    raw_query: Optional[str] = None
    urgency_hint: Optional[Urgency] = None

    @computed_field
    @property
    def completeness(self) -> float:
        """Weighted share of the core intake fields that are populated."""
        score = sum(
            weight
            for name, weight in CORE_FIELD_WEIGHTS.items()
            if is_populated(self.structured_fields.get(name))
        )
        return round(min(score, 1.0), 4)

    def field(self, name: str, default: Any = None) -> Any:
        """Read a structured field."""
        return self.structured_fields.get(name, default)

    def has_field(self, name: str) -> bool:
        return is_populated(self.structured_fields.get(name))

    def text(self) -> str:
        """All free text in the case, lowercased, for keyword scanning."""
        parts: list[str] = []
        if self.raw_query:
            parts.append(self.raw_query)
        for value in self.structured_fields.values():
            if isinstance(value, str):
                parts.append(value)
            elif isinstance(value, (list, tuple)):
                parts.extend(str(v) for v in value if isinstance(v, str))
        return " ".join(parts).lower()

    def fingerprint(self) -> str:
        """
        Stable cache key for this case.

        Two submissions with the same identifying fields (and raw query)
        share a fingerprint even if their ``case_id`` differs.
        """
        identity = {name: self.structured_fields.get(name) for name in FINGERPRINT_FIELDS}
        identity["raw_query"] = (self.raw_query or "").strip().lower()
        identity["urgency_hint"] = self.urgency_hint
        digest = hashlib.sha256(
            json.dumps(identity, sort_keys=True, default=str).encode("utf-8")
        ).hexdigest()
        return f"consultation:{digest[:16]}"

    def with_updates(self, case_id: Optional[str] = None, **fields: Any) -> "Case":
        """Return a new case with ``fields`` merged over the structured fields."""
        return Case(
            case_id=case_id or str(uuid.uuid4())[:8],
            structured_fields={**self.structured_fields, **fields},
            raw_query=self.raw_query,
            urgency_hint=self.urgency_hint,
        )
