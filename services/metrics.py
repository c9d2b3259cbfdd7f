"""In-memory tool-call metrics.

Every registered tool reports its latency and outcome here; the health
endpoint exposes a snapshot and chat turns log their per-turn totals.
"""

from __future__ import annotations

import math
import threading
from collections import defaultdict
from typing import Any


def _percentile(values: list[float], p: float) -> float:
    if not values:
        return 0.0
    ordered = sorted(values)
    pos = (len(ordered) - 1) * p
    lo, hi = math.floor(pos), math.ceil(pos)
    if lo == hi:
        return ordered[lo]
    frac = pos - lo
    return ordered[lo] * (1 - frac) + ordered[hi] * frac


class MetricsCollector:
    """Thread-safe collector keyed by tool name and by turn."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._tool_latencies: dict[str, list[float]] = defaultdict(list)
        self._tool_status: dict[str, dict[str, int]] = defaultdict(lambda: defaultdict(int))
        self._turns: dict[str, dict[str, Any]] = {}

    def record_tool_call(
        self,
        *,
        tool_name: str,
        status: str,
        latency_ms: float,
        turn_id: str = "",
        session_id: str = "",
    ) -> None:
        with self._lock:
            self._tool_latencies[tool_name].append(float(latency_ms))
            self._tool_status[tool_name][status] += 1
            if not turn_id:
                return
            turn = self._turns.setdefault(turn_id, {
                "turn_id": turn_id,
                "session_id": session_id,
                "tool_call_count": 0,
                "tool_error_count": 0,
                "total_latency_ms": 0.0,
            })
            turn["tool_call_count"] += 1
            if status != "ok":
                turn["tool_error_count"] += 1
            turn["total_latency_ms"] += float(latency_ms)

    def pop_turn_summary(self, turn_id: str) -> dict[str, Any]:
        """Return and forget the totals of one turn."""
        with self._lock:
            return self._turns.pop(turn_id, {})

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            tools = {}
            for tool, latencies in self._tool_latencies.items():
                status_map = self._tool_status.get(tool, {})
                total = sum(status_map.values())
                tools[tool] = {
                    "count": total,
                    "success_rate": (status_map.get("ok", 0) / total) if total else 0.0,
                    "latency_p50_ms": round(_percentile(latencies, 0.5), 2),
                    "latency_p95_ms": round(_percentile(latencies, 0.95), 2),
                }
            return {"tools": tools}

    def reset(self) -> None:
        with self._lock:
            self._tool_latencies.clear()
            self._tool_status.clear()
            self._turns.clear()


_metrics_collector = MetricsCollector()


def get_metrics_collector() -> MetricsCollector:
    return _metrics_collector
