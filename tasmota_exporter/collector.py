from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from prometheus_client.core import GaugeMetricFamily

from .outlets import Outlet
from .probe import DEFAULT_TIMEOUT_SECONDS, DeviceSnapshot, ProbeOutcome, Reachable, Unreachable, probe

logger = logging.getLogger(__name__)

OUTLET_LABEL = "outlet"

UP = "tasmota_up"
ON = "tasmota_on"

# name, help, snapshot attribute
MEASUREMENTS: Tuple[Tuple[str, str, str], ...] = (
    ("tasmota_voltage_volts", "voltage of tasmota plug in volt (V)", "voltage"),
    ("tasmota_current_amperes", "current of tasmota plug in ampere (A)", "current"),
    ("tasmota_power_watts", "current power of tasmota plug in watts (W)", "active_power"),
    ("tasmota_apparent_power_voltamperes", "apparent power of tasmota plug in volt-amperes (VA)", "apparent_power"),
    (
        "tasmota_reactive_power_voltamperesreactive",
        "reactive power of tasmota plug in volt-amperes reactive (VAr)",
        "reactive_power",
    ),
    ("tasmota_power_factor", "power factor of tasmota plug", "power_factor"),
    ("tasmota_today_kwh_total", "todays energy usage total in kilowatts hours (kWh)", "energy_today"),
    ("tasmota_yesterday_kwh_total", "yesterdays energy usage total in kilowatts hours (kWh)", "energy_yesterday"),
    ("tasmota_kwh_total", "total energy usage in kilowatts hours (kWh)", "energy_total"),
    ("tasmota_temperature_celsius", "temperature of the ESP32 chip in celsius", "chip_temperature"),
)

METRIC_HELP: Dict[str, str] = {
    UP: "Indicates if the tasmota outlet is reachable",
    ON: "Indicates if the tasmota plug is on/off",
}
METRIC_HELP.update({name: help_text for name, help_text, _ in MEASUREMENTS})

Prober = Callable[[str, float], ProbeOutcome]


@dataclass(frozen=True)
class MetricObservation:
    metric_name: str
    outlet_label: str
    value: float


class LabeledGauge:
    """Last written value per outlet label for one metric."""

    def __init__(self, name: str, help_text: str) -> None:
        self.name = name
        self.help_text = help_text
        self._values: Dict[str, float] = {}
        self._lock = Lock()

    def set(self, label: str, value: float) -> None:
        with self._lock:
            self._values[label] = float(value)

    def get(self, label: str) -> Optional[float]:
        with self._lock:
            return self._values.get(label)


def snapshot_observations(label: str, snapshot: DeviceSnapshot) -> List[MetricObservation]:
    obs = [
        MetricObservation(UP, label, 1.0),
        MetricObservation(ON, label, 1.0 if snapshot.power_on else 0.0),
    ]
    for name, _, attr in MEASUREMENTS:
        obs.append(MetricObservation(name, label, float(getattr(snapshot, attr))))
    return obs


def outcome_observations(label: str, outcome: ProbeOutcome) -> List[MetricObservation]:
    if isinstance(outcome, Reachable):
        return snapshot_observations(label, outcome.snapshot)
    # nothing but up=0 for unreachable outlets
    return [MetricObservation(UP, label, 0.0)]


class TasmotaCollector:
    def __init__(
        self,
        outlets: Sequence[Outlet],
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        prober: Prober = probe,
    ) -> None:
        self.outlets: Tuple[Outlet, ...] = tuple(outlets)
        self.timeout_seconds = float(timeout_seconds)
        self.prober = prober

        self.gauges: Dict[str, LabeledGauge] = {name: LabeledGauge(name, h) for name, h in METRIC_HELP.items()}

    def _probe_outlet(self, outlet: Outlet) -> ProbeOutcome:
        try:
            return self.prober(outlet.address, self.timeout_seconds)
        except Exception as e:
            logger.debug("outlet probe raised outlet=%s ip=%s", outlet.name, outlet.address, exc_info=True)
            return Unreachable(str(e))

    def _record(self, outlet: Outlet, outcome: ProbeOutcome) -> List[MetricObservation]:
        if isinstance(outcome, Unreachable):
            logger.warning("outlet probe failed outlet=%s ip=%s error=%s", outlet.name, outlet.address, outcome.error)
        else:
            logger.info("outlet probe successful outlet=%s ip=%s", outlet.name, outlet.address)

        obs = outcome_observations(outlet.name, outcome)
        for o in obs:
            self.gauges[o.metric_name].set(o.outlet_label, o.value)
        return obs

    def _parallel_probe(self) -> List[Tuple[Outlet, ProbeOutcome]]:
        if not self.outlets:
            return []

        executor = ThreadPoolExecutor(max_workers=len(self.outlets), thread_name_prefix="tasmota-probe")
        try:
            futs: List[Tuple[Outlet, Future]] = [(o, executor.submit(self._probe_outlet, o)) for o in self.outlets]
            wait([f for _, f in futs], timeout=self.timeout_seconds)
        finally:
            # each probe stops itself at its deadline; stragglers are not joined here
            executor.shutdown(wait=False, cancel_futures=True)

        results: List[Tuple[Outlet, ProbeOutcome]] = []
        for outlet, fut in futs:
            if fut.done() and not fut.cancelled():
                results.append((outlet, fut.result()))
            else:
                results.append((outlet, Unreachable(f"probe deadline of {self.timeout_seconds:g}s exceeded")))
        return results

    def observe(self) -> List[MetricObservation]:
        t0 = time.monotonic()
        obs: List[MetricObservation] = []
        for outlet, outcome in self._parallel_probe():
            obs.extend(self._record(outlet, outcome))
        logger.debug(
            "scrape finished outlets=%s observations=%s duration=%.3fs", len(self.outlets), len(obs), time.monotonic() - t0
        )
        return obs

    def _families(self) -> Dict[str, GaugeMetricFamily]:
        return {name: GaugeMetricFamily(name, h, labels=[OUTLET_LABEL]) for name, h in METRIC_HELP.items()}

    def describe(self) -> Iterator[GaugeMetricFamily]:
        yield from self._families().values()

    def collect(self) -> Iterator[GaugeMetricFamily]:
        families = self._families()
        for o in self.observe():
            families[o.metric_name].add_metric([o.outlet_label], o.value)
        yield from families.values()
