"""Component timing for phenomem experiments.

The experiment driver times each stage (matrix construction, initial
condition, integration, analysis) when handed an enabled monitor.
Disabled monitors are no-ops.

Usage:
    from phenomem.perf import PerfMonitor

    perf = PerfMonitor(enabled=True)
    result = run_experiment(config, perf=perf)
    print(perf.report())
"""

import time
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict


@dataclass
class StageTiming:
    """Accumulated wall-clock time for one stage."""
    total_time: float = 0.0
    call_count: int = 0
    max_time: float = 0.0

    @property
    def mean_time(self) -> float:
        return self.total_time / self.call_count if self.call_count > 0 else 0.0

    def add(self, elapsed: float) -> None:
        self.total_time += elapsed
        self.call_count += 1
        self.max_time = max(self.max_time, elapsed)


class PerfMonitor:
    """Per-stage wall-clock timer. No-op when ``enabled`` is False."""

    def __init__(self, enabled: bool = False):
        self.enabled = enabled
        self._stages: Dict[str, StageTiming] = defaultdict(StageTiming)

    @contextmanager
    def track(self, stage: str):
        """Time the enclosed block under ``stage``."""
        if not self.enabled:
            yield
            return
        t0 = time.perf_counter()
        try:
            yield
        finally:
            self._stages[stage].add(time.perf_counter() - t0)

    def get_stats(self) -> Dict[str, StageTiming]:
        return dict(self._stages)

    @property
    def total_time(self) -> float:
        return sum(s.total_time for s in self._stages.values())

    def summary(self) -> dict:
        """JSON-friendly {stage: {total_s, calls, mean_ms, pct}} plus '_total_s'."""
        total = self.total_time
        result = {}
        for name, st in sorted(self._stages.items(), key=lambda kv: -kv[1].total_time):
            result[name] = {
                'total_s': round(st.total_time, 4),
                'calls': st.call_count,
                'mean_ms': round(st.mean_time * 1000, 3),
                'pct': round(st.total_time / total * 100, 1) if total > 0 else 0.0,
            }
        result['_total_s'] = round(total, 4)
        return result

    def report(self, title: str = "Stage Timing") -> str:
        """Human-readable table of stage timings."""
        total = self.total_time
        rule = f"{'-'*20} {'-'*10} {'-'*6} {'-'*10} {'-'*6}"
        lines = [
            f"\n{'='*56}",
            f" {title}",
            f"{'='*56}",
            f"{'Stage':<20} {'Total (s)':>10} {'Calls':>6} {'Mean (ms)':>10} {'%':>6}",
            rule,
        ]
        for name, row in self.summary().items():
            if name.startswith('_'):
                continue
            lines.append(
                f"{name:<20} {row['total_s']:>10.4f} {row['calls']:>6} "
                f"{row['mean_ms']:>10.3f} {row['pct']:>5.1f}%"
            )
        lines.append(rule)
        lines.append(f"{'TOTAL':<20} {total:>10.4f}")
        lines.append(f"{'='*56}\n")
        return '\n'.join(lines)

    def reset(self) -> None:
        self._stages.clear()
