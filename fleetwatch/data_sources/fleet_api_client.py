"""Thin client for the fleet backend: defects, voyage checklists and port documents."""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from fleetwatch.domain import (
    ChecklistStats,
    ChecklistStatus,
    DefectCounts,
    normalize_port_name,
)
from utils.logging_utils import get_tagged_logger, mask_url

logger = get_tagged_logger(__name__)

DEFECTS_PATH = "/api/defects"
VOYAGE_CHECKLISTS_PATH = "/api/voyage/{vessel_id}/checklists"
PORTS_BATCH_PATH = "/api/ports/batch"
DOCUMENT_COUNTS_BATCH_PATH = "/api/documents/counts-batch"

FUZZY_MATCH_THRESHOLD = 0.8
_COUNTRY_ABBREVIATIONS = {"australia": "AU", "new zealand": "NZ"}


def _lower_field(record: Mapping[str, Any], *names: str) -> str:
    """Return the first non-empty field among `names`, lower-cased."""
    for name in names:
        value = record.get(name)
        if value:
            return str(value).strip().lower()
    return ""


def summarize_defects(defects: Iterable[Mapping[str, Any]]) -> DefectCounts:
    """Count open defects by criticality; the API mixes field casings."""
    high = medium = low = 0
    for defect in defects or []:
        status = _lower_field(defect, "status_vessel", "Status", "status")
        if status != "open":
            continue
        criticality = _lower_field(defect, "Criticality", "criticality")
        if criticality == "high":
            high += 1
        elif criticality == "medium":
            medium += 1
        elif criticality == "low":
            low += 1
    return DefectCounts(total=high + medium + low, high=high, medium=medium, low=low)


def summarize_checklists(checklists: Iterable[Mapping[str, Any]]) -> ChecklistStats:
    """
    Collapse a voyage's checklists into one status and progress figure.

    The most advanced status wins; progress is the mean of
    `progress_percentage` over all checklists.
    """
    items = list(checklists or [])
    if not items:
        return ChecklistStats()

    best: Optional[ChecklistStatus] = None
    progress_values: List[float] = []
    for item in items:
        status = ChecklistStatus.parse(item.get("status"))
        if status is not None and (best is None or status.rank > best.rank):
            best = status
        try:
            progress_values.append(float(item.get("progress_percentage") or 0))
        except (TypeError, ValueError):
            progress_values.append(0.0)

    progress = round(sum(progress_values) / len(progress_values))
    return ChecklistStats(
        status=(best or ChecklistStatus.PENDING).value,
        progress=max(0, min(100, progress)),
    )


def port_name_similarity(a: str, b: str) -> float:
    """1 - normalized Levenshtein distance between two port keys."""
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0
    previous = list(range(len(a) + 1))
    for j, char_b in enumerate(b, start=1):
        current = [j]
        for i, char_a in enumerate(a, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(min(current[i - 1] + 1, previous[i] + 1, previous[i - 1] + cost))
        previous = current
    return 1 - previous[-1] / max(len(a), len(b))


def _port_keys(port: Mapping[str, Any]) -> List[str]:
    """All normalized names a port can be referred to by."""
    name = port.get("port_name") or ""
    country = port.get("country_name") or ""
    keys = [normalize_port_name(name)]
    if country:
        keys.append(normalize_port_name(f"{name}, {country}"))
        abbreviation = _COUNTRY_ABBREVIATIONS.get(str(country).strip().lower())
        if abbreviation:
            keys.append(normalize_port_name(f"{name}, {abbreviation}"))
    return [key for key in keys if key]


def match_port(ports: Iterable[Mapping[str, Any]], port_name: str) -> Optional[Mapping[str, Any]]:
    """Pick the port record for `port_name`: exact key first, then best fuzzy match."""
    target = normalize_port_name(port_name)
    if not target:
        return None

    index: Dict[str, Mapping[str, Any]] = {}
    for port in ports:
        for key in _port_keys(port):
            index.setdefault(key, port)

    if target in index:
        return index[target]

    best_port = None
    best_score = 0.0
    for key, port in index.items():
        score = port_name_similarity(target, key)
        if score > FUZZY_MATCH_THRESHOLD and score > best_score:
            best_port, best_score = port, score
    if best_port is not None:
        logger.debug("Fuzzy matched port", extra={"port_name": port_name, "score": round(best_score, 3)})
    return best_port


class FleetApiClient:
    """Minimal client for the fleet backend. Raises on transport or HTTP errors."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30.0,
        retries: int = 2,
        session: Optional[requests.Session] = None,
    ) -> None:
        """Initialize with a base URL, request timeout and retry budget."""
        self.base_url = str(base_url).rstrip("/")
        self.timeout = timeout
        self.session = session or self._build_session(retries)

    @staticmethod
    def _build_session(retries: int) -> requests.Session:
        """Session that retries idempotent calls on connection errors and 5xx gateways."""
        retry = Retry(
            total=retries,
            backoff_factor=0.2,
            status_forcelist=(502, 503, 504),
            allowed_methods=frozenset({"GET", "POST"}),
            raise_on_status=False,
        )
        session = requests.Session()
        session.headers.update({"Accept": "application/json"})
        adapter = HTTPAdapter(max_retries=retry)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return session

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        url = self._url(path)
        logger.debug("GET %s params=%s", mask_url(url), params)
        response = self.session.get(url, params=params, timeout=self.timeout)
        response.raise_for_status()
        return response.json()

    def _post_json(self, path: str, payload: Dict[str, Any]) -> Any:
        url = self._url(path)
        logger.debug("POST %s payload=%s", mask_url(url), payload)
        response = self.session.post(url, json=payload, timeout=self.timeout)
        response.raise_for_status()
        return response.json()

    def get_defect_count_for_vessel(self, vessel_name: str) -> DefectCounts:
        """Fetch all defects of a vessel and count the open ones."""
        data = self._get_json(DEFECTS_PATH, params={"vessel_name": vessel_name})
        defects = data.get("defects", []) if isinstance(data, dict) else data
        counts = summarize_defects(defects if isinstance(defects, list) else [])
        logger.debug("Defect counts fetched", extra={"vessel_name": vessel_name, "total": counts.total})
        return counts

    def get_checklist_stats_for_vessel(self, vessel_id: str) -> ChecklistStats:
        """Fetch the checklists of a vessel's current voyage and summarize them."""
        data = self._get_json(VOYAGE_CHECKLISTS_PATH.format(vessel_id=vessel_id))
        checklists = data.get("checklists", []) if isinstance(data, dict) else data
        return summarize_checklists(checklists if isinstance(checklists, list) else [])

    def get_port_document_count(self, port_name: str) -> int:
        """Resolve a port name to a port id, then fetch its document count. 0 if unmatched."""
        mapping = self._post_json(PORTS_BATCH_PATH, {"port_names": [port_name], "fuzzy_match": True})
        ports = mapping.get("ports", []) if isinstance(mapping, dict) else []
        port = match_port(ports, port_name)
        if port is None or port.get("id") is None:
            logger.info("No port mapping found", extra={"port_name": port_name})
            return 0

        port_id = port["id"]
        data = self._post_json(DOCUMENT_COUNTS_BATCH_PATH, {"port_ids": [port_id]})
        counts = data.get("counts", {}) if isinstance(data, dict) else {}
        raw = counts.get(str(port_id), counts.get(port_id, 0))
        try:
            return int(raw or 0)
        except (TypeError, ValueError):
            logger.warning("Non-numeric document count", extra={"port_name": port_name, "count": raw})
            return 0
