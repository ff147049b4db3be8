"""Domain vocabulary for the fleet dashboard enrichment pipeline.

Enums, value objects and the vessel record schema shared by the adapters,
the queue, the merger and the HTTP layer. Key normalization lives here too so
that every component agrees on what "the same vessel" or "the same port" is.
"""

from __future__ import annotations

import re
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class _FrozenModel(BaseModel):
    """Immutable base model; updates go through model_copy()."""

    model_config = ConfigDict(frozen=True, extra="ignore")


class TaskType(str, Enum):
    """Kinds of secondary data fetched after the primary vessel list renders."""
    DEFECT_COUNT = "defectCount"
    CHECKLIST_STATS = "checklistStats"
    PORT_DOC_COUNT = "portDocCount"

    @property
    def label(self) -> str:
        return _TASK_LABELS[self]


_TASK_LABELS = {
    TaskType.DEFECT_COUNT: "defect counts",
    TaskType.CHECKLIST_STATS: "checklist status",
    TaskType.PORT_DOC_COUNT: "port documents",
}


class VoyageStatus(str, Enum):
    """Voyage-status filter selected on the fleet dashboard."""
    CURRENT = "current"
    PAST = "past"
    ALL = "all"

    def matches(self, vessel: "VesselRecord") -> bool:
        """Return True when the vessel belongs in this view."""
        if self is VoyageStatus.ALL:
            return True
        status = (vessel.status or "").strip().lower()
        if self is VoyageStatus.CURRENT:
            return status in ("", "active")
        return status == "inactive"


class ChecklistStatus(str, Enum):
    """Checklist workflow states, lowest to highest."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"
    ACKNOWLEDGED = "acknowledged"

    @property
    def rank(self) -> int:
        return _CHECKLIST_RANK[self]

    @classmethod
    def parse(cls, value: object) -> Optional["ChecklistStatus"]:
        """Map API spellings ("In Progress", "in-progress", "complete") onto the enum."""
        if value is None:
            return None
        text = re.sub(r"[\s\-]+", "_", str(value).strip().lower())
        if text == "complete":
            return cls.SUBMITTED
        try:
            return cls(text)
        except ValueError:
            return None


_CHECKLIST_RANK = {
    ChecklistStatus.PENDING: 1,
    ChecklistStatus.IN_PROGRESS: 2,
    ChecklistStatus.SUBMITTED: 3,
    ChecklistStatus.ACKNOWLEDGED: 4,
}


class FilterContext(_FrozenModel):
    """The view a result is computed for; compared by value."""
    voyage_status: VoyageStatus = VoyageStatus.CURRENT


class DefectCounts(_FrozenModel):
    """Open defects for one vessel, split by criticality."""
    total: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0


class ChecklistStats(_FrozenModel):
    """Aggregate checklist state for one vessel."""
    status: str = ChecklistStatus.PENDING.value
    progress: int = Field(default=0, ge=0, le=100)


EnrichmentValue = Union[DefectCounts, ChecklistStats, int]


class VesselRecord(_FrozenModel):
    """One vessel row on the fleet dashboard, plus derived enrichment fields."""
    vessel_id: Optional[Union[int, str]] = None
    vessel_name: Optional[str] = None
    imo_no: Optional[Union[int, str]] = None
    status: Optional[str] = None
    event_type: Optional[str] = None
    arrival_port: Optional[str] = None
    eta: Optional[datetime] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    office_doc: Optional[str] = None

    defect_count: Optional[DefectCounts] = None
    checklist_status: Optional[ChecklistStats] = None
    port_doc_count: Optional[int] = None


ENRICHMENT_FIELDS: Dict[TaskType, str] = {
    TaskType.DEFECT_COUNT: "defect_count",
    TaskType.CHECKLIST_STATS: "checklist_status",
    TaskType.PORT_DOC_COUNT: "port_doc_count",
}


def normalize_vessel_name(name: Optional[str]) -> str:
    """Lower-case a vessel name and join words with underscores."""
    if not name:
        return ""
    return re.sub(r"\s+", "_", str(name).strip().lower())


def normalize_port_name(name: Optional[str]) -> str:
    """Canonical port key: upper-case, no punctuation, no leading 'PORT OF'."""
    if not name:
        return ""
    text = re.sub(r"\s+", " ", str(name).strip().upper())
    text = re.sub(r"[^\w\s,]", "", text)
    text = re.sub(r"\bPORT\s+OF\s+", "", text)
    text = re.sub(r"\bPORT\s+", "", text)
    return text.strip()


def normalize_vessel_id(vessel_id: object) -> str:
    if vessel_id is None:
        return ""
    return str(vessel_id).strip()


def normalize_key(task_type: TaskType, raw_key: object) -> str:
    """Normalize a lookup key the way the adapter for `task_type` caches it."""
    if task_type is TaskType.DEFECT_COUNT:
        return normalize_vessel_name(None if raw_key is None else str(raw_key))
    if task_type is TaskType.PORT_DOC_COUNT:
        return normalize_port_name(None if raw_key is None else str(raw_key))
    return normalize_vessel_id(raw_key)


def raw_lookup_key(task_type: TaskType, vessel: VesselRecord) -> Optional[Union[int, str]]:
    """The un-normalized value of `vessel` that `task_type` is looked up by."""
    if task_type is TaskType.DEFECT_COUNT:
        return vessel.vessel_name
    if task_type is TaskType.PORT_DOC_COUNT:
        return vessel.arrival_port
    return vessel.vessel_id


def lookup_key(task_type: TaskType, vessel: VesselRecord) -> str:
    """Normalized key of `vessel` for `task_type`; empty when the vessel has none."""
    return normalize_key(task_type, raw_lookup_key(task_type, vessel))


def filter_vessels(vessels: Iterable[VesselRecord], context: FilterContext) -> List[VesselRecord]:
    """Return the vessels visible under `context`, preserving order."""
    return [vessel for vessel in vessels if context.voyage_status.matches(vessel)]
