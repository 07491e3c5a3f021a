"""Concrete metric types held by a Registry.

Every metric exposes a ``kind`` tag and ``to_dict()``, which is the only
surface the registry relies on. Mutations are guarded by a per-metric
lock so that concurrent updates of the same metric never lose writes.
"""

import functools
import math
import random
import threading
import time
from contextlib import contextmanager
from enum import Enum
from typing import Any, Callable, ClassVar, Dict, Iterator, List, Optional, Union

Number = Union[int, float]


class MetricKind(str, Enum):
    COUNTER = "counter"
    GAUGE = "gauge"
    METER = "meter"
    HISTOGRAM = "histogram"
    TIMER = "timer"
    # Only ever produced when serializing instance groups
    AGGREGATE = "aggregate"


class Metric:
    """Base class for all metric kinds."""

    kind: ClassVar[MetricKind]
    # Field of to_dict() that instance groups may combine across members
    scalar_field: ClassVar[str] = "count"

    def to_dict(self) -> Dict[str, Any]:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.to_dict()!r}>"


class Counter(Metric):
    """Monotonic (well, mostly) integer count."""

    kind = MetricKind.COUNTER

    def __init__(self) -> None:
        self._count = 0
        self._lock = threading.Lock()

    def inc(self, n: int = 1) -> None:
        with self._lock:
            self._count += n

    def dec(self, n: int = 1) -> None:
        with self._lock:
            self._count -= n

    @property
    def count(self) -> int:
        return self._count

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind.value, "count": self._count}


class Gauge(Metric):
    """Reports the result of a function, evaluated on every read.

    The function is fixed when the gauge is created. Nothing is cached,
    so two serializations in a row may report different values.
    """

    kind = MetricKind.GAUGE
    scalar_field = "value"

    def __init__(self, value_fn: Callable[[], Any]) -> None:
        self._value_fn = value_fn

    @property
    def value(self) -> Any:
        return self._value_fn()

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind.value, "value": self.value}


TICK_INTERVAL = 5.0  # seconds between EWMA ticks


class _EWMA:
    """Exponentially weighted moving average of a per-second rate."""

    def __init__(self, minutes: float) -> None:
        self.alpha = 1.0 - math.exp(-TICK_INTERVAL / 60.0 / minutes)
        self.rate = 0.0
        self._uncounted = 0
        self._initialized = False

    def update(self, n: int) -> None:
        self._uncounted += n

    def tick(self) -> None:
        instant_rate = self._uncounted / TICK_INTERVAL
        self._uncounted = 0
        if self._initialized:
            self.rate += self.alpha * (instant_rate - self.rate)
        else:
            self.rate = instant_rate
            self._initialized = True


class Meter(Metric):
    """Counts events and tracks their mean and 1/5/15 minute rates.

    Rates are per second. The moving averages are ticked lazily whenever
    the meter is marked or read, catching up on every missed tick.
    """

    kind = MetricKind.METER

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._count = 0
        self._start = time.monotonic()
        self._last_tick = self._start
        self._m1 = _EWMA(1)
        self._m5 = _EWMA(5)
        self._m15 = _EWMA(15)

    def mark(self, n: int = 1) -> None:
        with self._lock:
            self._tick_if_necessary()
            self._count += n
            self._m1.update(n)
            self._m5.update(n)
            self._m15.update(n)

    def _tick_if_necessary(self) -> None:
        # Caller holds the lock
        age = time.monotonic() - self._last_tick
        if age < TICK_INTERVAL:
            return
        ticks = int(age // TICK_INTERVAL)
        self._last_tick += ticks * TICK_INTERVAL
        for _ in range(ticks):
            self._m1.tick()
            self._m5.tick()
            self._m15.tick()

    @property
    def count(self) -> int:
        return self._count

    @property
    def mean_rate(self) -> float:
        if self._count == 0:
            return 0.0
        elapsed = time.monotonic() - self._start
        return self._count / elapsed if elapsed > 0 else 0.0

    def rates(self) -> Dict[str, float]:
        with self._lock:
            self._tick_if_necessary()
            return {
                "mean_rate": self.mean_rate,
                "one_minute_rate": self._m1.rate,
                "five_minute_rate": self._m5.rate,
                "fifteen_minute_rate": self._m15.rate,
            }

    def to_dict(self) -> Dict[str, Any]:
        rates = self.rates()
        return {"type": self.kind.value, "count": self._count, **rates}


RESERVOIR_SIZE = 1028
PERCENTILES = {
    "median": 0.5,
    "p75": 0.75,
    "p95": 0.95,
    "p98": 0.98,
    "p99": 0.99,
    "p999": 0.999,
}


def _quantile(values: List[float], q: float) -> float:
    """Interpolated quantile of an already sorted list."""
    if not values:
        return 0.0
    pos = q * (len(values) + 1)
    if pos < 1:
        return float(values[0])
    if pos >= len(values):
        return float(values[-1])
    lower = values[int(pos) - 1]
    upper = values[int(pos)]
    return lower + (pos - math.floor(pos)) * (upper - lower)


class Histogram(Metric):
    """Distribution of recorded values.

    count/min/max/mean/std_dev are exact over every update. Percentiles
    come from a uniform reservoir sample of at most RESERVOIR_SIZE values.
    """

    kind = MetricKind.HISTOGRAM

    def __init__(self, reservoir_size: int = RESERVOIR_SIZE) -> None:
        self._lock = threading.Lock()
        self._reservoir_size = reservoir_size
        self._reservoir: List[float] = []
        self._count = 0
        self._min: Optional[float] = None
        self._max: Optional[float] = None
        self._sum = 0.0
        # Welford running variance
        self._mean = 0.0
        self._m2 = 0.0

    def update(self, value: Number) -> None:
        with self._lock:
            self._count += 1
            self._sum += value
            self._min = value if self._min is None else min(self._min, value)
            self._max = value if self._max is None else max(self._max, value)
            delta = value - self._mean
            self._mean += delta / self._count
            self._m2 += delta * (value - self._mean)

            if len(self._reservoir) < self._reservoir_size:
                self._reservoir.append(value)
            else:
                slot = random.randrange(self._count)
                if slot < self._reservoir_size:
                    self._reservoir[slot] = value

    @property
    def count(self) -> int:
        return self._count

    def summary(self) -> Dict[str, Any]:
        with self._lock:
            count = self._count
            values = sorted(self._reservoir)
            std_dev = math.sqrt(self._m2 / (count - 1)) if count > 1 else 0.0
            result: Dict[str, Any] = {
                "count": count,
                "min": self._min if self._min is not None else 0.0,
                "max": self._max if self._max is not None else 0.0,
                "mean": self._mean if count else 0.0,
                "std_dev": std_dev,
            }
        for label, q in PERCENTILES.items():
            result[label] = _quantile(values, q)
        return result

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind.value, **self.summary()}


class Timer(Metric):
    """Histogram of durations in seconds plus a meter of their rate."""

    kind = MetricKind.TIMER

    def __init__(self) -> None:
        self._meter = Meter()
        self._histogram = Histogram()

    def update(self, seconds: float) -> None:
        if seconds < 0:
            return
        self._histogram.update(seconds)
        self._meter.mark()

    @contextmanager
    def time(self) -> Iterator[None]:
        """Time the enclosed block.

        Usage example:
        ```python
        with registry.timer("request").time():
            handle(request)
        ```
        """
        t0 = time.perf_counter()
        try:
            yield
        finally:
            self.update(time.perf_counter() - t0)

    def timed(self, fn: Callable) -> Callable:
        """Decorator recording the duration of every call of ``fn``."""

        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            with self.time():
                return fn(*args, **kwargs)

        return wrapper

    @property
    def count(self) -> int:
        return self._histogram.count

    def to_dict(self) -> Dict[str, Any]:
        summary = self._histogram.summary()
        rates = self._meter.rates()
        return {"type": self.kind.value, **summary, **rates}


METRIC_TYPES: Dict[MetricKind, type] = {
    MetricKind.COUNTER: Counter,
    MetricKind.GAUGE: Gauge,
    MetricKind.METER: Meter,
    MetricKind.HISTOGRAM: Histogram,
    MetricKind.TIMER: Timer,
}
