import httpx
import pytest

from core.config import TravelConfig
from core.models import Place
from factories import at, event
from services.travel import (
    ChainedTravelEstimator,
    DistanceMatrixClient,
    FlatRateTravelEstimator,
    HaversineTravelEstimator,
    PrecomputedTravelTimes,
    build_offline_estimator,
)

OFFICE = Place(label="Office", latitude=40.0, longitude=-74.0)
NORTH = Place(label="North site", latitude=41.0, longitude=-74.0)


def test_haversine_estimate_for_one_degree_of_latitude() -> None:
    minutes = HaversineTravelEstimator(average_speed_kmh=30, detour_factor=1.3).estimate_travel_minutes(OFFICE, NORTH)
    # ~111 km as the crow flies, ~145 km by road at 30 km/h
    assert 285 <= minutes <= 295


def test_haversine_needs_coordinates() -> None:
    estimator = HaversineTravelEstimator()
    assert estimator.estimate_travel_minutes(OFFICE, Place(label="Somewhere")) is None
    assert estimator.estimate_travel_minutes(Place(label="HQ"), Place(label=" hq ")) == 0


def test_haversine_rejects_non_positive_speed() -> None:
    with pytest.raises(ValueError):
        HaversineTravelEstimator(average_speed_kmh=0)


def test_flat_rate_estimator() -> None:
    estimator = FlatRateTravelEstimator(25)
    assert estimator.estimate_travel_minutes(Place(label="A"), Place(label="B")) == 25
    assert estimator.estimate_travel_minutes(Place(label="A"), Place(label="a")) == 0


def test_precomputed_lookup_normalizes_labels() -> None:
    table = PrecomputedTravelTimes({("Main  Office", "Client HQ"): 18})
    assert table.estimate_travel_minutes(Place(label="main office"), Place(label="CLIENT hq")) == 18
    assert table.estimate_travel_minutes(Place(label="Client HQ"), Place(label="Main Office")) is None
    assert len(table) == 1


def test_chain_returns_first_answer() -> None:
    chain = ChainedTravelEstimator([PrecomputedTravelTimes(), FlatRateTravelEstimator(12)])
    assert chain.estimate_travel_minutes(Place(label="A"), Place(label="B")) == 12
    assert ChainedTravelEstimator([]).estimate_travel_minutes(Place(label="A"), Place(label="B")) is None


def test_offline_estimator_prefers_coordinates_then_flat_rate() -> None:
    estimator = build_offline_estimator(TravelConfig(fallback_minutes=30))
    assert estimator.estimate_travel_minutes(OFFICE, NORTH) > 200
    assert estimator.estimate_travel_minutes(Place(label="A"), Place(label="B")) == 30

    strict = build_offline_estimator(TravelConfig(fallback_minutes=None))
    assert strict.estimate_travel_minutes(Place(label="A"), Place(label="B")) is None


def _matrix_payload(seconds: int) -> dict:
    return {
        "status": "OK",
        "rows": [{"elements": [{"status": "OK", "duration": {"value": seconds, "text": "x"}}]}],
    }


async def test_distance_matrix_client_resolves_unique_legs() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json=_matrix_payload(1490))

    office_morning = event(at(9), at(10), location="Office")
    client = event(at(10, 15), at(11), location="Client HQ")
    office_noon = event(at(12), at(13), location="Office")
    client_again = event(at(13, 30), at(14), location="client hq")
    legs = [(office_morning, client), (client, office_noon), (office_noon, client_again)]

    client_api = DistanceMatrixClient("test-key", transport=httpx.MockTransport(handler))
    table = await client_api.resolve_legs(legs)

    assert len(requests) == 2
    assert requests[0].url.params["key"] == "test-key"
    assert table.estimate_travel_minutes(Place(label="Office"), Place(label="Client HQ")) == 25
    assert table.estimate_travel_minutes(Place(label="Client HQ"), Place(label="Office")) == 25


async def test_distance_matrix_failures_leave_legs_unresolved() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if "Warehouse" in request.url.params["destinations"]:
            return httpx.Response(503)
        return httpx.Response(200, json={"status": "OVER_QUERY_LIMIT", "rows": []})

    legs = [
        (event(at(9), at(10), location="Office"), event(at(10, 15), at(11), location="Warehouse")),
        (event(at(11), at(12), location="Depot"), event(at(12, 15), at(13), location="Office")),
    ]
    table = await DistanceMatrixClient("k", transport=httpx.MockTransport(handler)).resolve_legs(legs)

    assert len(table) == 0
    assert table.estimate_travel_minutes(Place(label="Office"), Place(label="Warehouse")) is None


async def test_distance_matrix_uses_coordinates_when_available() -> None:
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.params["origins"])
        return httpx.Response(200, json=_matrix_payload(600))

    legs = [(event(at(9), at(10), location=OFFICE), event(at(11), at(12), location=NORTH))]
    table = await DistanceMatrixClient("k", transport=httpx.MockTransport(handler)).resolve_legs(legs)

    assert seen == ["40.0,-74.0"]
    assert table.estimate_travel_minutes(OFFICE, NORTH) == 10
