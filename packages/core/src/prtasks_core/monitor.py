"""Response monitor: an append log of oracle invocations and what it implies.

One monitor is created per process and passed to whoever invokes the oracle.
``record`` is safe to call from worker threads; it only buffers. ``flush``
merges the buffer into the on-disk log and is called from the sequential
batch loop, so the log file never has two writers.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from collections import Counter
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path

from prtasks_store.models import parse_timestamp

from prtasks_core.models import ResponseEvent

logger = logging.getLogger(__name__)

BUCKET_SIZE = 5000
MIN_BUCKET_SAMPLES = 3
DEFAULT_OPTIMAL_SIZE = 20000
DEFAULT_HIGH_RISK_THRESHOLD = 30000
HIGH_RISK_SUCCESS_RATE = 0.7
AUTO_OPTIMIZE_SUCCESS_RATE = 0.6


@dataclass
class OptimizationTip:
    kind: str
    priority: str
    description: str
    impact: str
    confidence: float


@dataclass
class ResponseAnalytics:
    total_requests: int = 0
    success_rate: float = 0.0
    average_prompt_size: float = 0.0
    average_response_size: float = 0.0
    average_processing_time_ms: float = 0.0
    recovery_rate: float = 0.0
    truncation_rate: float = 0.0
    average_truncation_score: float = 0.0
    optimal_prompt_size: int = DEFAULT_OPTIMAL_SIZE
    high_risk_threshold: int = DEFAULT_HIGH_RISK_THRESHOLD
    optimization_usage_rate: float = 0.0
    success_rate_improvement: float = 0.0
    error_distribution: dict[str, int] = field(default_factory=dict)
    recommendations: list[OptimizationTip] = field(default_factory=list)


def _success_rate(events: list[ResponseEvent]) -> float:
    if not events:
        return 0.0
    return sum(1 for e in events if e.success) / len(events)


def _size_buckets(events: list[ResponseEvent]) -> tuple[int, int]:
    """Return (optimal_prompt_size, high_risk_threshold) from 5 kB buckets."""
    buckets: dict[int, list[bool]] = {}
    for event in events:
        buckets.setdefault((event.prompt_size // BUCKET_SIZE) * BUCKET_SIZE, []).append(event.success)

    optimal, best_rate = DEFAULT_OPTIMAL_SIZE, 0.0
    high_risk = DEFAULT_HIGH_RISK_THRESHOLD
    for size in sorted(buckets):
        results = buckets[size]
        if len(results) < MIN_BUCKET_SAMPLES:
            continue
        rate = sum(results) / len(results)
        if rate > best_rate:
            # Upper edge of the bucket: every prompt in it did this well.
            best_rate, optimal = rate, size + BUCKET_SIZE
        if rate < HIGH_RISK_SUCCESS_RATE and size < high_risk:
            high_risk = size
    return optimal, high_risk


def _recommendations(a: ResponseAnalytics) -> list[OptimizationTip]:
    tips = []
    if a.success_rate < 0.8:
        tips.append(
            OptimizationTip(
                kind="success_rate",
                priority="critical" if a.success_rate < 0.5 else "high",
                description="Reduce batch size or enable smart retry to improve the success rate",
                impact=f"Current success rate is {a.success_rate * 100:.1f}%",
                confidence=0.85,
            )
        )
    if a.average_prompt_size > a.high_risk_threshold:
        tips.append(
            OptimizationTip(
                kind="prompt_size",
                priority="medium",
                description="Reduce average request size to minimise truncation risk",
                impact=f"Target size: {a.optimal_prompt_size} chars (current avg: {a.average_prompt_size:.0f})",
                confidence=0.75,
            )
        )
    if a.truncation_rate > 0.1:
        tips.append(
            OptimizationTip(
                kind="truncation",
                priority="high",
                description="High truncation rate detected; keep smart retry enabled",
                impact=f"{a.truncation_rate * 100:.1f}% of requests showed truncation signs",
                confidence=0.9,
            )
        )
    if a.average_processing_time_ms > 10000:
        tips.append(
            OptimizationTip(
                kind="performance",
                priority="medium",
                description="High processing times; consider fast mode or a smaller batch size",
                impact=f"Average latency is {a.average_processing_time_ms / 1000:.1f}s",
                confidence=0.7,
            )
        )
    return tips


def compute_analytics(events: list[ResponseEvent]) -> ResponseAnalytics:
    if not events:
        return ResponseAnalytics()

    n = len(events)
    truncated = [e for e in events if e.truncation_score > 0]
    optimized = [e for e in events if e.prompt_optimized]
    plain = [e for e in events if not e.prompt_optimized]
    optimal, high_risk = _size_buckets(events)

    analytics = ResponseAnalytics(
        total_requests=n,
        success_rate=_success_rate(events),
        average_prompt_size=sum(e.prompt_size for e in events) / n,
        average_response_size=sum(e.response_size for e in events) / n,
        average_processing_time_ms=sum(e.processing_time_ms for e in events) / n,
        recovery_rate=sum(1 for e in events if e.recovery_used) / n,
        truncation_rate=len(truncated) / n,
        average_truncation_score=(sum(e.truncation_score for e in truncated) / len(truncated)) if truncated else 0.0,
        optimal_prompt_size=optimal,
        high_risk_threshold=high_risk,
        optimization_usage_rate=len(optimized) / n,
        success_rate_improvement=(_success_rate(optimized) - _success_rate(plain)) if optimized and plain else 0.0,
        error_distribution=dict(Counter(e.error_type for e in events if e.error_type)),
    )
    analytics.recommendations = _recommendations(analytics)
    return analytics


class ResponseMonitor:
    """Collects ResponseEvents and derives a safe request-size budget."""

    def __init__(
        self,
        path: str = ".pr-review/analytics/response_events.json",
        enabled: bool = True,
        retention_days: int = 30,
        max_events: int = 1000,
        session_id: str | None = None,
    ):
        self.path = Path(path)
        self.enabled = enabled
        self.retention_days = retention_days
        self.max_events = max_events
        self.session_id = session_id or uuid.uuid4().hex[:12]
        self._lock = threading.Lock()
        self._pending: list[ResponseEvent] = []
        self._stored: list[ResponseEvent] | None = None

    @classmethod
    def from_config(cls, config: dict) -> ResponseMonitor:
        return cls(
            path=config.get("analytics_path", ".pr-review/analytics/response_events.json"),
            enabled=config.get("analytics_enabled", True),
            retention_days=config.get("analytics_retention_days", 30),
            max_events=config.get("analytics_max_events", 1000),
        )

    # -- collection ----------------------------------------------------------

    def record(self, event: ResponseEvent) -> None:
        if not self.enabled:
            return
        if not event.session_id:
            event.session_id = self.session_id
        with self._lock:
            self._pending.append(event)

    def _load(self) -> list[ResponseEvent]:
        if self._stored is None:
            self._stored = []
            if self.path.exists():
                try:
                    raw = json.loads(self.path.read_text())
                    self._stored = [ResponseEvent.from_dict(d) for d in raw if isinstance(d, dict)]
                except (OSError, json.JSONDecodeError) as e:
                    logger.warning("Ignoring unreadable analytics log %s: %s", self.path, e)
        return self._stored

    def _retain(self, events: list[ResponseEvent]) -> list[ResponseEvent]:
        cutoff = datetime.now(timezone.utc) - timedelta(days=self.retention_days)
        kept = [e for e in events if (parse_timestamp(e.timestamp) or cutoff) >= cutoff]
        return kept[-self.max_events :] if self.max_events > 0 else kept

    def events(self) -> list[ResponseEvent]:
        """Stored plus buffered events inside the retention window, oldest first."""
        if not self.enabled:
            return []
        with self._lock:
            pending = list(self._pending)
        return self._retain(self._load() + pending)

    def flush(self) -> None:
        """Merge buffered events into the log file. Failures are logged, not raised."""
        if not self.enabled:
            return
        with self._lock:
            pending, self._pending = self._pending, []
        if not pending:
            return
        merged = self._retain(self._load() + pending)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(".tmp")
            tmp.write_text(json.dumps([asdict(e) for e in merged], indent=2))
            tmp.replace(self.path)
        except OSError as e:
            logger.warning("Could not write analytics log %s: %s", self.path, e)
            return
        self._stored = merged

    def close(self) -> None:
        self.flush()

    # -- analysis ------------------------------------------------------------

    def analyze(self) -> ResponseAnalytics:
        return compute_analytics(self.events())

    def recommended_prompt_budget(self) -> int:
        return self.analyze().optimal_prompt_size

    def should_shrink(self, prompt_size: int) -> bool:
        """True when history says a request of this size is likely to fail."""
        analytics = self.analyze()
        if analytics.total_requests < MIN_BUCKET_SAMPLES:
            return False
        if analytics.success_rate < AUTO_OPTIMIZE_SUCCESS_RATE:
            return prompt_size > analytics.optimal_prompt_size
        return prompt_size > analytics.high_risk_threshold

    def generate_report(self) -> str:
        a = self.analyze()
        lines = [
            "# Oracle Response Report",
            "",
            "## Summary",
            f"- Total requests: {a.total_requests}",
            f"- Success rate: {a.success_rate * 100:.1f}%",
            f"- Average request size: {a.average_prompt_size:.0f} chars",
            f"- Average response size: {a.average_response_size:.0f} chars",
            f"- Average processing time: {a.average_processing_time_ms:.1f} ms",
            f"- Recovery rate: {a.recovery_rate * 100:.1f}%",
            "",
            "## Truncation",
            f"- Truncation rate: {a.truncation_rate * 100:.1f}%",
            f"- Average truncation score: {a.average_truncation_score:.2f}",
            f"- Recommended request budget: {a.optimal_prompt_size} chars",
            f"- High-risk threshold: {a.high_risk_threshold} chars",
            f"- Shrunk requests: {a.optimization_usage_rate * 100:.1f}%",
            "",
            "## Errors",
        ]
        if a.error_distribution:
            for error_type, count in sorted(a.error_distribution.items(), key=lambda kv: -kv[1]):
                lines.append(f"- {error_type}: {count} ({count / a.total_requests * 100:.1f}%)")
        else:
            lines.append("- none")
        lines += ["", "## Recommendations"]
        if a.recommendations:
            for i, tip in enumerate(a.recommendations, 1):
                lines.append(f"{i}. **{tip.description}** ({tip.priority} priority, {tip.confidence * 100:.0f}% confidence)")
                lines.append(f"   {tip.impact}")
        else:
            lines.append("No recommendations.")
        return "\n".join(lines) + "\n"
