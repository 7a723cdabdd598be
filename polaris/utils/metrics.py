# polaris/utils/metrics.py

import time
from collections import Counter, defaultdict
from typing import Any, Dict, List


class MetricsTracker:
    """
    In-process counters for model provider calls.

    ``record_llm_call`` is fed by every provider registered with a
    ModelManager; ``record_event`` counts occurrences such as provider
    switches in the chat API.
    """

    def __init__(self):
        self.calls: Dict[str, Counter] = defaultdict(Counter)
        self.latencies: Dict[str, List[float]] = defaultdict(list)
        self.events: Counter = Counter()
        self.event_log: List[Dict[str, Any]] = []

    def record_llm_call(self, provider_id: str, latency_ms: float, success: bool = True, output_chars: int = 0):
        stats = self.calls[provider_id]
        stats["call_count"] += 1
        stats["successful_calls" if success else "failed_calls"] += 1
        stats["total_output_chars"] += output_chars
        self.latencies[provider_id].append(latency_ms)

    def record_event(self, event_name: str, **details):
        self.events[event_name] += 1
        self.event_log.append({"timestamp": time.time(), "event_name": event_name, "details": details})

    def get_summary(self) -> Dict[str, Any]:
        """Per-provider call counts with latency statistics, plus event counts under ``events``."""
        summary: Dict[str, Any] = {}
        for provider_id, stats in self.calls.items():
            latencies = self.latencies[provider_id]
            summary[provider_id] = {
                "call_count": stats["call_count"],
                "successful_calls": stats["successful_calls"],
                "failed_calls": stats["failed_calls"],
                "total_output_chars": stats["total_output_chars"],
                "average_latency_ms": round(sum(latencies) / len(latencies), 2),
                "min_latency_ms": round(min(latencies), 2),
                "max_latency_ms": round(max(latencies), 2),
            }
        if self.events:
            summary["events"] = dict(self.events)
        return summary

    def reset(self):
        self.calls.clear()
        self.latencies.clear()
        self.events.clear()
        self.event_log.clear()
