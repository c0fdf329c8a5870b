from __future__ import annotations

import json
import logging
import math
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

import requests

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 5.0
STATUS_PATH = "/cm?cmnd=status%2010"
MAX_BODY_BYTES = 64 * 1024


@dataclass(frozen=True)
class DeviceSnapshot:
    voltage: float = 0.0
    current: float = 0.0
    active_power: float = 0.0
    apparent_power: float = 0.0
    reactive_power: float = 0.0
    power_factor: float = 0.0
    energy_today: float = 0.0
    energy_yesterday: float = 0.0
    energy_total: float = 0.0
    chip_temperature: float = 0.0
    time: str = ""
    total_start_time: str = ""

    @property
    def power_on(self) -> bool:
        # Plugs report 0 W when switched off.
        return self.active_power > 0


@dataclass(frozen=True)
class Reachable:
    snapshot: DeviceSnapshot


@dataclass(frozen=True)
class Unreachable:
    error: str


ProbeOutcome = Union[Reachable, Unreachable]


class DeadlineExceeded(Exception):
    pass


def status_url(address: str) -> str:
    return f"http://{address}{STATUS_PATH}"


# Absent keys and JSON null decode to zero values; any other type mismatch is a parse error.


def _number(d: Dict[str, Any], key: str) -> float:
    v = d.get(key)
    if v is None:
        return 0.0
    if isinstance(v, bool) or not isinstance(v, (int, float)):
        raise ValueError(f"{key}: expected a number, got {type(v).__name__}")
    v = float(v)
    if not math.isfinite(v):
        raise ValueError(f"{key}: expected a finite number, got {v}")
    return v


def _string(d: Dict[str, Any], key: str) -> str:
    v = d.get(key)
    if v is None:
        return ""
    if not isinstance(v, str):
        raise ValueError(f"{key}: expected a string, got {type(v).__name__}")
    return v


def _object(d: Dict[str, Any], key: str) -> Dict[str, Any]:
    v = d.get(key)
    if v is None:
        return {}
    if not isinstance(v, dict):
        raise ValueError(f"{key}: expected an object, got {type(v).__name__}")
    return v


def parse_status(payload: Any) -> DeviceSnapshot:
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValueError(f"status payload must be a JSON object, got {type(payload).__name__}")

    sns = _object(payload, "StatusSNS")
    energy = _object(sns, "ENERGY")
    esp32 = _object(sns, "ESP32")

    return DeviceSnapshot(
        voltage=_number(energy, "Voltage"),
        current=_number(energy, "Current"),
        active_power=_number(energy, "Power"),
        apparent_power=_number(energy, "ApparentPower"),
        reactive_power=_number(energy, "ReactivePower"),
        power_factor=_number(energy, "Factor"),
        energy_today=_number(energy, "Today"),
        energy_yesterday=_number(energy, "Yesterday"),
        energy_total=_number(energy, "Total"),
        chip_temperature=_number(esp32, "Temperature"),
        time=_string(sns, "Time"),
        total_start_time=_string(energy, "TotalStartTime"),
    )


def _read_body(resp: requests.Response, deadline: float) -> bytes:
    body = bytearray()
    # byte-wise reads so a device trickling data cannot outlive the deadline
    for chunk in resp.iter_content(chunk_size=1):
        if time.monotonic() > deadline:
            raise DeadlineExceeded("deadline exceeded while reading response")
        body.extend(chunk)
        if len(body) > MAX_BODY_BYTES:
            raise ValueError(f"response larger than {MAX_BODY_BYTES} bytes")
    return bytes(body)


def probe(
    address: str,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    session: Optional[requests.Session] = None,
) -> ProbeOutcome:
    """Query one outlet's ``status 10`` once.

    ``timeout`` bounds the whole request/response/parse cycle. Every
    failure, including a body that does not parse, is returned as
    ``Unreachable``; nothing is raised.
    """
    deadline = time.monotonic() + timeout
    url = status_url(address)
    http = session if session is not None else requests
    try:
        with http.get(url, timeout=timeout, stream=True) as resp:
            if time.monotonic() > deadline:
                raise DeadlineExceeded("deadline exceeded before response headers")
            body = _read_body(resp, deadline)
            status_code = resp.status_code
    except requests.RequestException as e:
        logger.debug("outlet probe failed ip=%s error=%s", address, e)
        return Unreachable(f"failed to query tasmota target {address}: {e}")
    except (DeadlineExceeded, ValueError) as e:
        logger.debug("outlet probe failed ip=%s error=%s", address, e)
        return Unreachable(f"failed to read data from tasmota target {address}: {e}")

    logger.debug("tasmota target response target=%s status=%s response=%r", address, status_code, body)

    try:
        snapshot = parse_status(json.loads(body))
    except ValueError as e:
        logger.debug("outlet probe failed ip=%s error=%s", address, e)
        return Unreachable(f"failed to parse JSON response from {address}: {e}")

    logger.debug("outlet probe successful ip=%s", address)
    return Reachable(snapshot)
