"""Result schema shared by every analysis provider.

The models are immutable pydantic objects. Python code uses snake_case
attribute names while the JSON form (HTTP endpoint, remote payloads) uses
the camelCase aliases, e.g. ``scanType`` or ``highlightedRegions``.

Payloads coming from a remote model are untrusted. :func:`coerce_result`
normalises such a document (defaults, clamping, synthetic region ids)
before it is validated against :class:`AnalysisResult`.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping, Sequence
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, TypeVar

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    computed_field,
    model_validator,
)
from pydantic.alias_generators import to_camel

from .errors import MalformedResponse

logger = logging.getLogger(__name__)

DEFAULT_RECOMMENDATION = "Please consult a physician."

Confidence = Annotated[int, Field(ge=0, le=100)]
Percentage = Annotated[float, Field(ge=0.0, le=100.0)]


class ScanType(str, Enum):
    """Coarse imaging modality."""

    XRAY = "X-ray"
    MRI = "MRI"
    CT = "CT"
    ULTRASOUND = "Ultrasound"
    UNKNOWN = "Unknown"


class ImageQuality(str, Enum):
    GOOD = "Good"
    MODERATE = "Moderate"
    POOR = "Poor"


class FindingStatus(str, Enum):
    NORMAL = "Normal"
    ABNORMAL = "Abnormal"
    UNCERTAIN = "Uncertain"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class UrgencyLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class _SchemaModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )


class SuspectedCondition(_SchemaModel):
    """A candidate condition reported for the scan."""

    name: str
    confidence: Confidence = 0
    description: str = ""


class Region(_SchemaModel):
    """Rectangular area of interest, expressed in percent of the image bounds."""

    id: str
    location: str
    description: str = ""
    x: Percentage = 0.0
    y: Percentage = 0.0
    width: Percentage = 0.0
    height: Percentage = 0.0
    severity: Severity = Severity.MEDIUM


class DifferentialDiagnosis(_SchemaModel):
    name: str
    confidence: Confidence = 0
    evidence: tuple[str, ...] = ()


class AnalysisResult(_SchemaModel):
    """Outcome of analysing a single scan image."""

    scan_type: ScanType = ScanType.UNKNOWN
    image_quality: ImageQuality = ImageQuality.MODERATE
    status: FindingStatus = FindingStatus.UNCERTAIN
    suspected_conditions: tuple[SuspectedCondition, ...] = ()
    highlighted_regions: tuple[Region, ...] = ()
    overall_confidence: Confidence = 0
    urgency_level: UrgencyLevel = UrgencyLevel.MEDIUM
    recommendation: str = DEFAULT_RECOMMENDATION
    analysis_timestamp: datetime
    is_poor_quality_failure: bool = False
    differential_diagnoses: tuple[DifferentialDiagnosis, ...] | None = None

    @computed_field(alias="isUncertain")  # type: ignore[prop-decorator]
    @property
    def is_uncertain(self) -> bool:
        return self.status == FindingStatus.UNCERTAIN

    @model_validator(mode="after")
    def _check_invariants(self) -> AnalysisResult:
        if self.is_uncertain:
            if not self.differential_diagnoses:
                raise ValueError("An uncertain result requires ranked differential diagnoses.")
        elif self.differential_diagnoses is not None:
            raise ValueError("Differential diagnoses are only allowed for uncertain results.")

        if self.is_poor_quality_failure and not self.is_uncertain:
            raise ValueError("A poor-quality failure must have an uncertain status.")

        if self.status == FindingStatus.NORMAL and (
            self.suspected_conditions or self.highlighted_regions
        ):
            raise ValueError("A normal result cannot carry findings or highlighted regions.")

        ids = [region.id for region in self.highlighted_regions]
        if len(ids) != len(set(ids)):
            raise ValueError("Region identifiers must be unique within a result.")
        return self

    def region(self, region_id: str) -> Region | None:
        """Return the highlighted region with the given id, if any."""
        for region in self.highlighted_regions:
            if region.id == region_id:
                return region
        return None

    def to_payload(self) -> dict[str, Any]:
        """Serialise to the camelCase JSON document used on the wire."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ----- Coercion of untrusted payloads -----------------------------------------

_EnumT = TypeVar("_EnumT", bound=Enum)
_NORMALISE_PATTERN = re.compile(r"[^a-z0-9]+")


def _normalise_token(value: str) -> str:
    return _NORMALISE_PATTERN.sub("", value.lower())


def _coerce_enum(enum_type: type[_EnumT], raw: Any, default: _EnumT, *, field: str) -> _EnumT:
    if raw is None or raw == "":
        return default
    if isinstance(raw, enum_type):
        return raw
    token = _normalise_token(str(raw))
    for member in enum_type:
        if _normalise_token(str(member.value)) == token:
            return member
    logger.warning("Unknown %s value %r; using %s", field, raw, default.value)
    return default


def _coerce_confidence(raw: Any) -> int:
    if raw is None or isinstance(raw, bool):
        return 0
    try:
        value = float(str(raw).strip().rstrip("%"))
    except ValueError:
        logger.warning("Discarding non-numeric confidence %r", raw)
        return 0
    if value != value:  # NaN
        return 0
    return int(round(min(100.0, max(0.0, value))))


def _coerce_percent(raw: Any) -> float:
    if raw is None or isinstance(raw, bool):
        return 0.0
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return 0.0
    if value != value:
        return 0.0
    return min(100.0, max(0.0, value))


def _coerce_text(raw: Any, default: str = "") -> str:
    if raw is None:
        return default
    text = str(raw).strip()
    return text or default


def coerce_flag(raw: Any) -> bool:
    """Interpret a boolean the way models tend to spell it (true, "true", "yes", 1)."""
    if isinstance(raw, str):
        return raw.strip().lower() in {"true", "yes", "1"}
    return bool(raw)


def _as_list(raw: Any, *, field: str) -> list[Any]:
    if raw is None:
        return []
    if isinstance(raw, Sequence) and not isinstance(raw, (str, bytes)):
        return list(raw)
    logger.warning("Expected a list for %s, got %s; ignoring it", field, type(raw).__name__)
    return []


def _coerce_conditions(raw: Any) -> list[dict[str, Any]]:
    conditions: list[dict[str, Any]] = []
    for entry in _as_list(raw, field="suspectedConditions"):
        if not isinstance(entry, Mapping):
            logger.warning("Dropping malformed suspected condition: %r", entry)
            continue
        name = _coerce_text(entry.get("name"))
        if not name:
            logger.warning("Dropping suspected condition without a name: %r", entry)
            continue
        conditions.append(
            {
                "name": name,
                "confidence": _coerce_confidence(entry.get("confidence")),
                "description": _coerce_text(entry.get("description")),
            }
        )
    return conditions


def _coerce_regions(raw: Any) -> list[dict[str, Any]]:
    regions: list[dict[str, Any]] = []
    used_ids: set[str] = set()
    for index, entry in enumerate(_as_list(raw, field="highlightedRegions")):
        if not isinstance(entry, Mapping):
            logger.warning("Dropping malformed highlighted region: %r", entry)
            continue
        region_id = _coerce_text(entry.get("id"))
        if not region_id or region_id in used_ids:
            region_id = f"region-{index}"
            suffix = 1
            while region_id in used_ids:
                region_id = f"region-{index}-{suffix}"
                suffix += 1
        used_ids.add(region_id)
        regions.append(
            {
                "id": region_id,
                "location": _coerce_text(entry.get("location"), "Unspecified"),
                "description": _coerce_text(entry.get("description")),
                "x": _coerce_percent(entry.get("x")),
                "y": _coerce_percent(entry.get("y")),
                "width": _coerce_percent(entry.get("width")),
                "height": _coerce_percent(entry.get("height")),
                "severity": _coerce_enum(
                    Severity, entry.get("severity"), Severity.MEDIUM, field="severity"
                ),
            }
        )
    return regions


def _coerce_differentials(raw: Any) -> list[dict[str, Any]]:
    differentials: list[dict[str, Any]] = []
    for entry in _as_list(raw, field="differentialDiagnoses"):
        if not isinstance(entry, Mapping):
            logger.warning("Dropping malformed differential diagnosis: %r", entry)
            continue
        name = _coerce_text(entry.get("name"))
        if not name:
            continue
        evidence_raw = entry.get("evidence")
        if isinstance(evidence_raw, str):
            evidence_items = [evidence_raw]
        else:
            evidence_items = _as_list(evidence_raw, field="evidence")
        evidence = tuple(text for text in (_coerce_text(item) for item in evidence_items) if text)
        differentials.append(
            {
                "name": name,
                "confidence": _coerce_confidence(entry.get("confidence")),
                "evidence": evidence,
            }
        )
    # Stable sort keeps the model's order for ties.
    differentials.sort(key=lambda item: item["confidence"], reverse=True)
    return differentials


def coerce_result(payload: Any, *, timestamp: datetime | None = None) -> AnalysisResult:
    """Validate an untyped payload and build an :class:`AnalysisResult` from it.

    Missing optional fields receive their defaults, confidences are rounded
    and clamped to ``[0, 100]`` and regions without a usable id get a
    synthetic one. Payloads that still break the result invariants raise
    :class:`~medscan.errors.MalformedResponse`.
    """
    if not isinstance(payload, Mapping):
        raise MalformedResponse(
            f"Analysis payload must be a JSON object, got {type(payload).__name__}."
        )

    status = _coerce_enum(
        FindingStatus, payload.get("status"), FindingStatus.UNCERTAIN, field="status"
    )
    differentials: list[dict[str, Any]] | None = None
    raw_differentials = payload.get("differentialDiagnoses")
    if status == FindingStatus.UNCERTAIN:
        differentials = _coerce_differentials(raw_differentials)
    elif raw_differentials:
        logger.warning("Dropping differential diagnoses supplied for a %s result", status.value)

    data = {
        "scan_type": _coerce_enum(
            ScanType, payload.get("scanType"), ScanType.UNKNOWN, field="scanType"
        ),
        "image_quality": _coerce_enum(
            ImageQuality,
            payload.get("imageQuality"),
            ImageQuality.MODERATE,
            field="imageQuality",
        ),
        "status": status,
        "suspected_conditions": _coerce_conditions(payload.get("suspectedConditions")),
        "highlighted_regions": _coerce_regions(payload.get("highlightedRegions")),
        "overall_confidence": _coerce_confidence(payload.get("overallConfidence")),
        "urgency_level": _coerce_enum(
            UrgencyLevel,
            payload.get("urgencyLevel"),
            UrgencyLevel.MEDIUM,
            field="urgencyLevel",
        ),
        "recommendation": _coerce_text(payload.get("recommendation"), DEFAULT_RECOMMENDATION),
        "analysis_timestamp": timestamp or datetime.now(timezone.utc),
        "is_poor_quality_failure": coerce_flag(payload.get("isPoorQualityFailure")),
        "differential_diagnoses": differentials,
    }

    try:
        return AnalysisResult.model_validate(data)
    except ValidationError as exc:
        messages = "; ".join(error["msg"] for error in exc.errors())
        raise MalformedResponse(f"Analysis payload violates the result schema: {messages}") from exc
