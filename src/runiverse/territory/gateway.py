"""Territory persistence gateway.

The server is authoritative for claimed territories: it assigns ids and
owners and may recompute metrics. This module defines the gateway contract
used by the capture session, a REST client for the territory API and an
in-memory implementation for offline replays and tests.
"""

import datetime as dt
import itertools
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

import polyline
import requests
from dateutil.parser import isoparse

from runiverse.territory.constants import DEFAULT_REQUEST_TIMEOUT_S, TERRITORY_SCOPES
from runiverse.territory.models import Position, Territory
from runiverse.territory.spatial.metrics import ring_area_m2, ring_perimeter_m
from runiverse.territory.spatial.spatial_utils import close_ring, sanitize_ring

logger = logging.getLogger(__name__)


class GatewayError(Exception):
    """Raised when the persistence gateway cannot complete a call."""

    pass


def encode_path(path: Sequence[Position]) -> Optional[str]:
    """
    Google encoded polyline of a (lon, lat) path, or None for an empty path.
    """
    if len(path) == 0:
        return None
    return polyline.encode([(lat, lon) for lon, lat in path])


def _parse_datetime(value) -> dt.datetime:
    if isinstance(value, dt.datetime):
        return value
    if isinstance(value, str) and value:
        try:
            return isoparse(value)
        except ValueError:
            logger.warning(f"Unparseable claim date {value!r}, using current time")
    return dt.datetime.now(dt.timezone.utc)


def _owner_id(owner) -> Optional[str]:
    if owner is None:
        return None
    if isinstance(owner, dict):
        owner = owner.get("_id") or owner.get("id")
        return str(owner) if owner is not None else None
    return str(owner)


def _metric(metrics: Dict[str, Any], name: str) -> Optional[float]:
    value = metrics.get(name)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        return None
    return float(value)


def territory_from_record(record: Dict[str, Any]) -> Optional[Territory]:
    """
    Build a Territory from a server record.

    Records look like:
    {
      "_id": "...", "owner": "..." | {"_id": ...}, "name": "...",
      "location": {"type": "Polygon", "coordinates": [[[lon, lat], ...]]},
      "metrics": {"area": 1234.5, "length": 140.2},
      "claimedOn": "2024-05-01T10:00:00Z"
    }

    Missing metrics are computed from the ring. Returns None for records
    without a usable outer ring.
    """
    if not isinstance(record, dict):
        return None

    location = record.get("location") or {}
    coordinates = location.get("coordinates") if isinstance(location, dict) else None
    if not isinstance(coordinates, list) or len(coordinates) == 0:
        return None

    ring = sanitize_ring(coordinates[0])
    if ring is None:
        logger.debug(f"Skipping territory record {record.get('_id')} with an unusable ring")
        return None

    metrics = record.get("metrics") or {}
    area = _metric(metrics, "area")
    length = _metric(metrics, "length")

    territory_id = record.get("_id") or record.get("id")
    return Territory(
        id=str(territory_id) if territory_id is not None else "",
        ring=ring,
        area_m2=area if area is not None else ring_area_m2(ring),
        perimeter_m=length if length is not None else ring_perimeter_m(ring),
        claimed_at=_parse_datetime(record.get("claimedOn")),
        owner_id=_owner_id(record.get("owner")),
        name=record.get("name"),
    )


def unwrap_response(body):
    """Strip the optional {"success": ..., "data": ...} envelope."""
    if isinstance(body, dict) and "data" in body:
        if body.get("success") is False:
            raise GatewayError(body.get("message") or "Territory API reported a failure")
        return body["data"]
    return body


class TerritoryGateway(ABC):
    """Contract between a capture session and territory storage."""

    @abstractmethod
    def fetch_territories(self, scope: str = "all") -> List[Territory]:
        """Territories visible in 'scope' ("all" or "own")."""

    @abstractmethod
    def claim(
        self,
        ring: Sequence[Position],
        area_m2: float,
        perimeter_m: float,
        raw_sample_path: Sequence[Position],
        encoded_path: Optional[str] = None,
    ) -> Territory:
        """Persist a claim and return the authoritative territory."""


def _check_scope(scope: str):
    if scope not in TERRITORY_SCOPES:
        raise ValueError(f"Unknown territory scope {scope!r}")


class RestTerritoryGateway(TerritoryGateway):
    """
    Client for the territory REST API.

    GET  {api_url}/api/territories?scope=all|own
    POST {api_url}/api/territories/claim
    """

    def __init__(
        self,
        api_url: str,
        token: Optional[str] = None,
        timeout: float = DEFAULT_REQUEST_TIMEOUT_S,
        session: Optional[requests.Session] = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _request(self, method: str, path: str, **kwargs):
        url = f"{self.api_url}{path}"
        try:
            response = self.session.request(
                method, url, headers=self._headers(), timeout=self.timeout, **kwargs
            )
            response.raise_for_status()
            return unwrap_response(response.json())
        except (requests.RequestException, ValueError) as e:
            raise GatewayError(f"{method} {url} failed: {e}") from e

    def fetch_territories(self, scope="all"):
        _check_scope(scope)
        # The API calls the caller's own territories "user"
        data = self._request(
            "GET", "/api/territories", params={"scope": "user" if scope == "own" else "all"}
        )
        if not isinstance(data, list):
            raise GatewayError("Territory list response is not a list")
        territories = [territory_from_record(r) for r in data]
        return [t for t in territories if t is not None]

    def claim(self, ring, area_m2, perimeter_m, raw_sample_path, encoded_path=None):
        payload = {
            "coordinates": [[list(p) for p in close_ring(ring)]],
            "area": area_m2,
            "length": perimeter_m,
            "rawPoints": [{"lon": lon, "lat": lat} for lon, lat in raw_sample_path],
        }
        if encoded_path:
            payload["encodedPolyline"] = encoded_path

        territory = territory_from_record(self._request("POST", "/api/territories/claim", json=payload))
        if territory is None:
            raise GatewayError("Claim response did not contain a territory")
        logger.info(f"Claimed territory {territory.id} ({territory.area_m2:.0f} m2)")
        return territory


class InMemoryTerritoryGateway(TerritoryGateway):
    """
    Stores claims in memory, standing in for the territory API.

    Every claim gets a sequential id and is owned by 'owner_id'.
    """

    def __init__(self, owner_id: Optional[str] = None, territories: Sequence[Territory] = ()):
        self.owner_id = owner_id
        self.territories = list(territories)
        self.claims = []
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def fetch_territories(self, scope="all"):
        _check_scope(scope)
        with self._lock:
            if scope == "own":
                return [t for t in self.territories if t.owner_id == self.owner_id]
            return list(self.territories)

    def claim(self, ring, area_m2, perimeter_m, raw_sample_path, encoded_path=None):
        with self._lock:
            territory = Territory(
                id=f"territory-{next(self._ids)}",
                ring=tuple(close_ring(ring)),
                area_m2=area_m2,
                perimeter_m=perimeter_m,
                claimed_at=dt.datetime.now(dt.timezone.utc),
                owner_id=self.owner_id,
            )
            self.territories.append(territory)
            self.claims.append(
                {"territory": territory, "raw_sample_path": list(raw_sample_path), "encoded_path": encoded_path}
            )
        return territory
