"""Shared fixtures with sample Wiener Linien monitor API responses."""

from unittest.mock import MagicMock

import pytest


@pytest.fixture
def sample_line_u1():
    """U1 line with two departures."""
    return {
        "name": "U1",
        "towards": "LEOPOLDAU",
        "direction": "H",
        "platform": "1",
        "richtungsId": "1",
        "barrierFree": True,
        "realtimeSupported": True,
        "trafficjam": False,
        "type": "ptMetro",
        "lineId": 301,
        "departures": {
            "departure": [
                {"departureTime": {"timePlanned": "2026-10-16T08:02:00.000+0200", "countdown": 2}},
                {"departureTime": {"timePlanned": "2026-10-16T08:09:00.000+0200", "countdown": 9}},
            ]
        },
    }


@pytest.fixture
def sample_line_25():
    """Tram 25 with one departure between the two U1 departures."""
    return {
        "name": "25",
        "towards": "ASPERN, OBERDORFSTRASSE",
        "platform": "2",
        "barrierFree": False,
        "type": "ptTram",
        "departures": {
            "departure": [
                {"departureTime": {"countdown": 4}},
            ]
        },
    }


@pytest.fixture
def sample_line_26a():
    """Bus 26A departing now."""
    return {
        "name": "26A",
        "towards": "GROSS-ENZERSDORF",
        "platform": "",
        "barrierFree": True,
        "type": "ptBusCity",
        "departures": {
            "departure": [
                {"departureTime": {"countdown": 0}},
                {"departureTime": {"countdown": 9}},
            ]
        },
    }


@pytest.fixture
def sample_monitor_response(sample_line_u1, sample_line_25, sample_line_26a):
    """Full monitor response with one stop and three lines."""
    return {
        "data": {
            "monitors": [
                {
                    "locationStop": {
                        "type": "Feature",
                        "geometry": {"type": "Point", "coordinates": [16.3699, 48.2007]},
                        "properties": {
                            "name": "60201349",
                            "title": "Karlsplatz",
                            "municipality": "Wien",
                            "municipalityId": 90001,
                            "type": "stop",
                            "coordName": "WGS84",
                            "attributes": {"rbl": 4116},
                        },
                    },
                    "lines": [sample_line_u1, sample_line_25, sample_line_26a],
                    "refTrafficInfoNames": [],
                }
            ]
        },
        "message": {"value": "OK", "messageCode": 1, "serverTime": "2026-10-16T08:00:00.000+0200"},
    }


@pytest.fixture
def sample_empty_monitors_response():
    """Response for an unknown RBL number: no monitors."""
    return {
        "data": {"monitors": []},
        "message": {"value": "OK", "messageCode": 1, "serverTime": "2026-10-16T08:00:00.000+0200"},
    }


def _make_response(payload=None, status_code=200, text="", json_error=False):
    """Build a mock requests.Response."""
    resp = MagicMock()
    resp.status_code = status_code
    resp.ok = status_code < 400
    resp.reason = "OK" if resp.ok else "Service Unavailable"
    resp.text = text
    if json_error:
        resp.json.side_effect = ValueError("Expecting value")
    else:
        resp.json.return_value = payload
    return resp


@pytest.fixture
def sample_config_yaml(tmp_path):
    """Create a temporary YAML config file."""
    yaml_content = """widgets:
  - id: karlsplatz
    rbl: "4116"
    lineFilter: "U1, U4"
    refreshInterval: 45
    showTwoDepartures: false
  - rbl: 4603
    textColor: "#ffffff"

display:
  columns: 2
  fps: 20
  fullscreen: true

api:
  base_url: "http://localhost:8080/monitor"
  timeout_seconds: 3
"""
    config_file = tmp_path / "config.yaml"
    config_file.write_text(yaml_content)
    return str(config_file)


@pytest.fixture
def make_response():
    """Factory for mock requests.Response objects."""
    return _make_response


class FakeClock:
    """Settable epoch clock in seconds."""

    def __init__(self, now: float = 1_760_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance_ms(self, ms: float) -> None:
        self.now += ms / 1000


@pytest.fixture
def clock():
    return FakeClock()
