import datetime as dt
from unittest.mock import MagicMock

import pytest
import requests

from runiverse.territory.gateway import (
    GatewayError,
    InMemoryTerritoryGateway,
    RestTerritoryGateway,
    encode_path,
    territory_from_record,
    unwrap_response,
)

# Unit tests for the territory persistence gateways.
#
# The test boundary is the REST gateway's use of a requests Session, which is
# replaced with a mock so no network calls are made.

COORDINATES = [[[-105.0, 40.0], [-104.999, 40.0], [-104.999, 40.001], [-105.0, 40.001], [-105.0, 40.0]]]


@pytest.fixture
def record():
    return {
        "_id": "64f1c2",
        "owner": {"_id": "u-7", "name": "Sam"},
        "name": "Park loop",
        "location": {"type": "Polygon", "coordinates": COORDINATES},
        "metrics": {"area": 9440.5, "length": 390.2},
        "claimedOn": "2024-05-01T10:00:00Z",
    }


def response(body, status_error=None):
    mock = MagicMock()
    mock.json.return_value = body
    if status_error is not None:
        mock.raise_for_status.side_effect = status_error
    return mock


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def gateway(session):
    return RestTerritoryGateway("https://api.example.org/", token="secret", timeout=5, session=session)


def test_encode_path_uses_lat_lon_order():
    path = [(-120.2, 38.5), (-120.95, 40.7), (-126.453, 43.252)]
    assert encode_path(path) == "_p~iF~ps|U_ulLnnqC_mqNvxq`@"


def test_encode_empty_path():
    assert encode_path([]) is None


class TestTerritoryFromRecord:
    """Test suite for reading server territory records."""

    def test_full_record(self, record):
        territory = territory_from_record(record)
        assert territory.id == "64f1c2"
        assert territory.owner_id == "u-7"
        assert territory.name == "Park loop"
        assert territory.area_m2 == 9440.5
        assert territory.perimeter_m == 390.2
        assert territory.claimed_at == dt.datetime(2024, 5, 1, 10, 0, tzinfo=dt.timezone.utc)
        assert territory.ring[0] == (-105.0, 40.0)
        assert not territory.provisional

    def test_plain_owner_and_id(self, record):
        record["owner"] = "u-8"
        del record["_id"]
        record["id"] = 17
        territory = territory_from_record(record)
        assert territory.owner_id == "u-8"
        assert territory.id == "17"

    def test_missing_metrics_are_computed(self, record):
        del record["metrics"]
        territory = territory_from_record(record)
        assert territory.area_m2 == pytest.approx(9440, rel=0.1)
        assert territory.perimeter_m == pytest.approx(390, rel=0.05)

    def test_negative_metrics_are_computed(self, record):
        record["metrics"] = {"area": -1, "length": "long"}
        territory = territory_from_record(record)
        assert territory.area_m2 > 0
        assert territory.perimeter_m > 0

    def test_open_ring_is_closed(self, record):
        record["location"]["coordinates"] = [COORDINATES[0][:-1]]
        territory = territory_from_record(record)
        assert territory.ring[0] == territory.ring[-1]

    @pytest.mark.parametrize(
        "location",
        [
            None,
            {"type": "Polygon", "coordinates": []},
            {"type": "Polygon", "coordinates": [[[0, 0], [1, 1]]]},
            {"type": "Polygon", "coordinates": "nope"},
        ],
    )
    def test_unusable_ring(self, record, location):
        record["location"] = location
        assert territory_from_record(record) is None

    def test_not_a_record(self):
        assert territory_from_record(["x"]) is None

    def test_bad_date_falls_back_to_now(self, record):
        record["claimedOn"] = "last tuesday"
        territory = territory_from_record(record)
        assert territory.claimed_at.tzinfo is not None


def test_unwrap_response_envelope():
    assert unwrap_response({"success": True, "data": [1, 2]}) == [1, 2]
    assert unwrap_response([1, 2]) == [1, 2]


def test_unwrap_response_failure():
    with pytest.raises(GatewayError, match="nope"):
        unwrap_response({"success": False, "data": None, "message": "nope"})


class TestRestGateway:
    """Test suite for the REST territory gateway."""

    def test_fetch_all(self, gateway, session, record):
        session.request.return_value = response({"success": True, "data": [record, {"_id": "broken"}]})

        territories = gateway.fetch_territories("all")

        assert [t.id for t in territories] == ["64f1c2"]
        method, url = session.request.call_args.args
        kwargs = session.request.call_args.kwargs
        assert method == "GET"
        assert url == "https://api.example.org/api/territories"
        assert kwargs["params"] == {"scope": "all"}
        assert kwargs["headers"]["Authorization"] == "Bearer secret"
        assert kwargs["timeout"] == 5

    def test_fetch_own_uses_user_scope(self, gateway, session):
        session.request.return_value = response([])
        assert gateway.fetch_territories("own") == []
        assert session.request.call_args.kwargs["params"] == {"scope": "user"}

    def test_unknown_scope(self, gateway):
        with pytest.raises(ValueError):
            gateway.fetch_territories("everyone")

    def test_fetch_rejects_non_list(self, gateway, session):
        session.request.return_value = response({"data": {"oops": 1}})
        with pytest.raises(GatewayError):
            gateway.fetch_territories()

    def test_claim_payload(self, gateway, session, record):
        session.request.return_value = response({"success": True, "data": record})
        ring = [tuple(p) for p in COORDINATES[0][:-1]]

        territory = gateway.claim(ring, 9440.5, 390.2, [(-105.0, 40.0), (-104.999, 40.0)], "abc")

        assert territory.id == "64f1c2"
        method, url = session.request.call_args.args
        payload = session.request.call_args.kwargs["json"]
        assert method == "POST"
        assert url == "https://api.example.org/api/territories/claim"
        assert payload["coordinates"] == COORDINATES
        assert payload["area"] == 9440.5
        assert payload["length"] == 390.2
        assert payload["rawPoints"] == [{"lon": -105.0, "lat": 40.0}, {"lon": -104.999, "lat": 40.0}]
        assert payload["encodedPolyline"] == "abc"

    def test_claim_without_encoded_path(self, gateway, session, record):
        session.request.return_value = response(record)
        gateway.claim(COORDINATES[0], 1.0, 1.0, [])
        assert "encodedPolyline" not in session.request.call_args.kwargs["json"]

    def test_claim_without_territory_in_response(self, gateway, session):
        session.request.return_value = response({"success": True, "data": {}})
        with pytest.raises(GatewayError):
            gateway.claim(COORDINATES[0], 1.0, 1.0, [])

    def test_connection_error(self, gateway, session):
        session.request.side_effect = requests.ConnectionError("refused")
        with pytest.raises(GatewayError, match="refused"):
            gateway.fetch_territories()

    def test_http_error(self, gateway, session):
        session.request.return_value = response({}, status_error=requests.HTTPError("500 Server Error"))
        with pytest.raises(GatewayError):
            gateway.claim(COORDINATES[0], 1.0, 1.0, [])

    def test_invalid_json(self, gateway, session):
        bad = response(None)
        bad.json.side_effect = ValueError("Expecting value")
        session.request.return_value = bad
        with pytest.raises(GatewayError):
            gateway.fetch_territories()

    def test_no_token_no_authorization(self, session):
        session.request.return_value = response([])
        RestTerritoryGateway("https://api.example.org", session=session).fetch_territories()
        assert "Authorization" not in session.request.call_args.kwargs["headers"]


class TestInMemoryGateway:
    """Test suite for the offline gateway."""

    def test_claims_get_sequential_ids(self):
        gateway = InMemoryTerritoryGateway(owner_id="me")
        first = gateway.claim(COORDINATES[0], 1.0, 2.0, [])
        second = gateway.claim(COORDINATES[0][:-1], 3.0, 4.0, [])
        assert (first.id, second.id) == ("territory-1", "territory-2")
        assert second.ring[0] == second.ring[-1]
        assert second.owner_id == "me"

    def test_fetch_by_scope(self):
        theirs = territory_from_record(
            {"_id": "x", "owner": "them", "location": {"coordinates": COORDINATES}}
        )
        gateway = InMemoryTerritoryGateway(owner_id="me", territories=[theirs])
        mine = gateway.claim(COORDINATES[0], 1.0, 2.0, [])
        assert gateway.fetch_territories("all") == [theirs, mine]
        assert gateway.fetch_territories("own") == [mine]
