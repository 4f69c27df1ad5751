"""Clocks, recording HTTP transport and provider payload builders for the tests."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Dict, List

import httpx
import polyline


class FakeClock:
    """Manually advanced clock usable for both monotonic and wall time."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingTransport:
    """``httpx.MockTransport`` handler that records requests and replays a router."""

    def __init__(self, router: Callable[[httpx.Request], httpx.Response]) -> None:
        self.router = router
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.router(request)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))

    def calls_to(self, host: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.host == host]


ROUTE_POINTS = [(28.6139, 77.209), (28.62, 77.215), (28.6304, 77.2177)]


def nominatim_hit(**overrides: Any) -> Dict[str, Any]:
    hit = {
        "place_id": 1234,
        "lat": "28.6304",
        "lon": "77.2177",
        "display_name": "Connaught Place, New Delhi, Delhi, India",
        "type": "commercial",
        "class": "place",
        "importance": 0.72,
        "namedetails": {"name": "Connaught Place"},
    }
    hit.update(overrides)
    return hit


def ors_directions_body(distance_m: float = 5230.0, duration_s: float = 780.0) -> Dict[str, Any]:
    return {
        "routes": [
            {
                "summary": {"distance": distance_m, "duration": duration_s},
                "geometry": polyline.encode(ROUTE_POINTS),
                "segments": [
                    {
                        "steps": [
                            {
                                "instruction": "Head north on Janpath",
                                "distance": 800.0,
                                "duration": 120.0,
                                "way_points": [0, 1],
                            },
                            {
                                "instruction": "Arrive at Connaught Place",
                                "distance": 4430.0,
                                "duration": 660.0,
                                "way_points": [1, 2],
                            },
                        ]
                    }
                ],
            }
        ]
    }


def google_directions_body(waypoint_order: List[int] | None = None) -> Dict[str, Any]:
    route: Dict[str, Any] = {
        "legs": [
            {
                "distance": {"value": 6100},
                "duration": {"value": 900},
                "steps": [
                    {
                        "html_instructions": "Head <b>north</b> on Janpath",
                        "distance": {"value": 6100},
                        "duration": {"value": 900},
                        "start_location": {"lat": 28.6139, "lng": 77.209},
                        "end_location": {"lat": 28.6304, "lng": 77.2177},
                    }
                ],
            }
        ],
        "overview_polyline": {"points": polyline.encode(ROUTE_POINTS)},
    }
    if waypoint_order is not None:
        route["waypoint_order"] = waypoint_order
    return {"status": "OK", "routes": [route]}


def google_geocode_body() -> Dict[str, Any]:
    return {
        "status": "OK",
        "results": [
            {
                "place_id": "ChIJ-google",
                "formatted_address": "Connaught Place, New Delhi, India",
                "address_components": [{"long_name": "Connaught Place"}],
                "geometry": {"location": {"lat": 28.6315, "lng": 77.2167}},
                "types": ["sublocality"],
            }
        ],
    }


def json_response(body: Any, status: int = 200) -> httpx.Response:
    return httpx.Response(status, json=body)
