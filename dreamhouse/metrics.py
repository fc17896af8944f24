"""
Thread-safe in-memory metrics for the design service.

Tracks:
  - Counters: submissions, per-area image outcomes, video/recolor outcomes
  - Latency: stage and call durations (last 100 samples per name)
  - Errors: last 50 failures for root-cause analysis
  - Outcomes: ready / failed ratio per artifact kind (images, videos, recolors)

All data is ephemeral (resets on restart).
"""

import time
import threading
from typing import Dict, List
from collections import defaultdict

_lock = threading.Lock()

# ── Counters ──────────────────────────────────────────────────────────────────
_counters: Dict[str, int] = defaultdict(int)

# ── Latency samples (last 100 per name) ───────────────────────────────────────
_latency_samples: Dict[str, List[float]] = defaultdict(list)
MAX_SAMPLES = 100

# ── Gauges ────────────────────────────────────────────────────────────────────
_gauges: Dict[str, float] = defaultdict(float)

# ── Error log (last 50 errors for RCA) ────────────────────────────────────────
_recent_errors: List[dict] = []
MAX_ERRORS = 50


OUTCOME_KINDS = ("images", "videos", "recolors")


# ── Public API ────────────────────────────────────────────────────────────────

def inc_counter(name: str, amount: int = 1):
    """Increment a counter (e.g. 'images.ready', 'videos.failed')."""
    with _lock:
        _counters[name] += amount


def record_latency(name: str, duration_ms: float):
    """Record a latency sample in milliseconds."""
    with _lock:
        samples = _latency_samples[name]
        samples.append(duration_ms)
        if len(samples) > MAX_SAMPLES:
            _latency_samples[name] = samples[-MAX_SAMPLES:]


def set_gauge(name: str, value: float):
    """Set a gauge value (e.g. 'active_runs', 'pending_videos')."""
    with _lock:
        _gauges[name] = value


def record_error(source: str, error_type: str, message: str, project_id: str = ""):
    """Record an error for root-cause analysis."""
    with _lock:
        _recent_errors.append({
            "timestamp": time.time(),
            "source": source,
            "error_type": error_type,
            "message": message[:300],
            "project_id": project_id,
        })
        if len(_recent_errors) > MAX_ERRORS:
            _recent_errors.pop(0)


def get_snapshot() -> dict:
    """Return a complete metrics snapshot for the /metrics endpoint."""
    now = time.time()

    with _lock:
        latency_stats = {}
        for name, samples in _latency_samples.items():
            if not samples:
                continue
            sorted_s = sorted(samples)
            n = len(sorted_s)
            latency_stats[name] = {
                "p50": sorted_s[n // 2],
                "p95": sorted_s[int(n * 0.95)] if n >= 20 else sorted_s[-1],
                "avg": sum(sorted_s) / n,
                "count": n,
            }

        outcomes = {}
        for kind in OUTCOME_KINDS:
            ready = _counters.get(f"{kind}.ready", 0)
            failed = _counters.get(f"{kind}.failed", 0)
            if ready or failed:
                outcomes[kind] = {
                    "ready": ready,
                    "failed": failed,
                    "success_rate": round(ready / (ready + failed) * 100, 1),
                }

        error_patterns: Dict[str, int] = defaultdict(int)
        for err in _recent_errors:
            error_patterns[f"{err['source']}:{err['error_type']}"] += 1

        return {
            "timestamp": now,
            "counters": dict(_counters),
            "gauges": dict(_gauges),
            "latency": latency_stats,
            "outcomes": outcomes,
            "recent_errors": list(_recent_errors[-10:]),
            "error_patterns": dict(error_patterns),
            "uptime_seconds": now - _gauges.get("start_time", now),
        }


def reset():
    """Clear everything. Used at startup and by tests."""
    with _lock:
        _counters.clear()
        _latency_samples.clear()
        _gauges.clear()
        _recent_errors.clear()
