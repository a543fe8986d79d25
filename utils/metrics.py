import time
from collections import defaultdict
from typing import Dict, List

# Process-local counters and timings, exposed at GET /metrics.
_counters: Dict[str, int] = defaultdict(int)
_timings: Dict[str, List[float]] = defaultdict(list)


def incr(name: str, amount: int = 1) -> None:
    _counters[name] += amount


def get_counter(name: str) -> int:
    return _counters.get(name, 0)


def record_timing(name: str, value_ms: float) -> None:
    _timings[name].append(value_ms)


def get_timings(name: str) -> List[float]:
    return list(_timings.get(name, []))


def time_ms() -> float:
    return time.time() * 1000.0


def snapshot() -> Dict[str, object]:
    timings = {
        name: {"count": len(values), "avg_ms": round(sum(values) / len(values), 2)}
        for name, values in _timings.items()
        if values
    }
    return {"counters": dict(_counters), "timings": timings}


def reset() -> None:
    _counters.clear()
    _timings.clear()
