"""Travel time collaborators.

The logistics analyzer only ever calls ``estimate_travel_minutes``; anything
that needs the network (``DistanceMatrixClient``) resolves its answers ahead
of the analysis run into a :class:`PrecomputedTravelTimes` table.
"""
from __future__ import annotations

import asyncio
import logging
import math
from typing import Iterable, Mapping, Optional, Protocol, Sequence

import httpx

from core.config import TravelConfig
from core.models import Event, Place

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0088
DISTANCE_MATRIX_URL = "https://maps.googleapis.com/maps/api/distancematrix/json"


class TravelTimeEstimator(Protocol):
    def estimate_travel_minutes(self, origin: Place, destination: Place) -> Optional[int]:
        ...


def same_place(origin: Place, destination: Place) -> bool:
    if origin.has_coordinates and destination.has_coordinates:
        return (origin.latitude, origin.longitude) == (destination.latitude, destination.longitude)
    return origin.key == destination.key


def haversine_km(origin: Place, destination: Place) -> float:
    lat1, lon1 = math.radians(origin.latitude), math.radians(origin.longitude)
    lat2, lon2 = math.radians(destination.latitude), math.radians(destination.longitude)
    a = (
        math.sin((lat2 - lat1) / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin((lon2 - lon1) / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(a))


class HaversineTravelEstimator:
    """Straight-line distance stretched by a detour factor at an average speed."""

    def __init__(self, average_speed_kmh: float = 30.0, detour_factor: float = 1.3) -> None:
        if average_speed_kmh <= 0:
            raise ValueError("Average speed must be positive")
        self.average_speed_kmh = average_speed_kmh
        self.detour_factor = detour_factor

    def estimate_travel_minutes(self, origin: Place, destination: Place) -> Optional[int]:
        if same_place(origin, destination):
            return 0
        if not (origin.has_coordinates and destination.has_coordinates):
            return None
        road_km = haversine_km(origin, destination) * self.detour_factor
        return math.ceil(road_km / self.average_speed_kmh * 60)


class FlatRateTravelEstimator:
    """Fixed travel time between any two different places."""

    def __init__(self, minutes: int = 30) -> None:
        self.minutes = minutes

    def estimate_travel_minutes(self, origin: Place, destination: Place) -> Optional[int]:
        if same_place(origin, destination):
            return 0
        return self.minutes


class PrecomputedTravelTimes:
    """Lookup table of travel times resolved before the analysis run."""

    def __init__(self, minutes_by_leg: Mapping[tuple[str, str], int] | None = None) -> None:
        self._minutes: dict[tuple[str, str], int] = {}
        for (origin, destination), minutes in (minutes_by_leg or {}).items():
            self.set(Place(label=origin), Place(label=destination), minutes)

    def set(self, origin: Place, destination: Place, minutes: int) -> None:
        self._minutes[(origin.key, destination.key)] = minutes

    def __len__(self) -> int:
        return len(self._minutes)

    def estimate_travel_minutes(self, origin: Place, destination: Place) -> Optional[int]:
        if same_place(origin, destination):
            return 0
        return self._minutes.get((origin.key, destination.key))


class ChainedTravelEstimator:
    """Ask each estimator in turn and return the first answer."""

    def __init__(self, estimators: Sequence[TravelTimeEstimator]) -> None:
        self.estimators = list(estimators)

    def estimate_travel_minutes(self, origin: Place, destination: Place) -> Optional[int]:
        for estimator in self.estimators:
            minutes = estimator.estimate_travel_minutes(origin, destination)
            if minutes is not None:
                return minutes
        return None


def build_offline_estimator(config: TravelConfig) -> TravelTimeEstimator:
    """Estimator chain that never leaves the process."""
    estimators: list[TravelTimeEstimator] = [
        HaversineTravelEstimator(config.average_speed_kmh, config.detour_factor)
    ]
    if config.fallback_minutes is not None:
        estimators.append(FlatRateTravelEstimator(config.fallback_minutes))
    return ChainedTravelEstimator(estimators)


class DistanceMatrixClient:
    """Resolve travel legs through the Google Distance Matrix API."""

    def __init__(
        self,
        api_key: str,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    @staticmethod
    def _place_param(place: Place) -> str:
        if place.has_coordinates:
            return f"{place.latitude},{place.longitude}"
        return place.label

    async def fetch_minutes(
        self, client: httpx.AsyncClient, origin: Place, destination: Place
    ) -> Optional[int]:
        params = {
            "origins": self._place_param(origin),
            "destinations": self._place_param(destination),
            "mode": "driving",
            "key": self.api_key,
        }
        try:
            response = await client.get(DISTANCE_MATRIX_URL, params=params)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Distance Matrix lookup failed for %s -> %s: %s", origin.label, destination.label, exc)
            return None

        if payload.get("status") != "OK":
            logger.warning("Distance Matrix returned status %s", payload.get("status"))
            return None
        try:
            element = payload["rows"][0]["elements"][0]
        except (KeyError, IndexError):
            return None
        if element.get("status") != "OK":
            return None
        duration = element.get("duration_in_traffic") or element.get("duration") or {}
        seconds = duration.get("value")
        if seconds is None:
            return None
        return math.ceil(seconds / 60)

    async def resolve_legs(self, legs: Iterable[tuple[Event, Event]]) -> PrecomputedTravelTimes:
        table = PrecomputedTravelTimes()
        pairs: dict[tuple[str, str], tuple[Place, Place]] = {}
        for previous, following in legs:
            if previous.location is None or following.location is None:
                continue
            if same_place(previous.location, following.location):
                continue
            pairs.setdefault(
                (previous.location.key, following.location.key),
                (previous.location, following.location),
            )
        if not pairs:
            return table

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            results = await asyncio.gather(
                *(self.fetch_minutes(client, origin, destination) for origin, destination in pairs.values())
            )

        for (origin, destination), minutes in zip(pairs.values(), results):
            if minutes is not None:
                table.set(origin, destination, minutes)
        logger.info("Resolved %d of %d travel legs", len(table), len(pairs))
        return table
