"""Performance logging and strategy insights for context building."""

from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PerformanceRecord:
    timestamp_utc: str
    query_preview: str
    rich_path: bool
    reason: str
    decision_confidence: float
    document_count: int
    conversation_length: int
    chunks_found: int
    total_ms: float
    retrieval_ms: float
    cache_hit_rate: float
    degraded: bool = False


@dataclass(slots=True)
class StrategyInsights:
    rich_path_benefit: float
    rich_requests: int
    fast_requests: int
    insights: list[str] = field(default_factory=list)


class PerformanceLog:
    """In-memory request log, optionally mirrored to a JSON-lines file.

    `analyze()` compares rich-path and fast-path requests: benefit is the
    chunk-yield ratio divided by the latency ratio (higher is better).
    """

    def __init__(self, path: str | Path | None = None) -> None:
        self._path = Path(path) if path is not None else None
        self._lock = threading.Lock()
        self._records: list[PerformanceRecord] = []

    @classmethod
    def load(cls, path: str | Path) -> "PerformanceLog":
        """Read a JSON-lines log; malformed lines are skipped."""
        log = cls(path)
        file_path = Path(path)
        if not file_path.exists():
            return log
        for line in file_path.read_text(encoding="utf-8").splitlines():
            if not line.strip():
                continue
            try:
                log._records.append(PerformanceRecord(**json.loads(line)))
            except (ValueError, TypeError):
                logger.debug("Skipping malformed performance log line")
        return log

    def record(
        self,
        *,
        query: str,
        rich_path: bool,
        reason: str,
        decision_confidence: float,
        document_count: int,
        conversation_length: int,
        chunks_found: int,
        total_ms: float,
        retrieval_ms: float,
        cache_hit_rate: float,
        degraded: bool = False,
    ) -> PerformanceRecord:
        preview = query if len(query) <= 50 else query[:50] + "..."
        record = PerformanceRecord(
            timestamp_utc=datetime.now(timezone.utc).isoformat(),
            query_preview=preview,
            rich_path=rich_path,
            reason=reason,
            decision_confidence=decision_confidence,
            document_count=document_count,
            conversation_length=conversation_length,
            chunks_found=chunks_found,
            total_ms=total_ms,
            retrieval_ms=retrieval_ms,
            cache_hit_rate=cache_hit_rate,
            degraded=degraded,
        )
        with self._lock:
            self._records.append(record)
            if self._path is not None:
                self._append_line(self._path, record)

        logger.info(
            "[PERF] %.0fms total | %s | retrieval %.0fms (%d chunks) | %r",
            total_ms,
            "rich" if rich_path else "fast",
            retrieval_ms,
            chunks_found,
            preview,
        )
        return record

    def list_recent(self, limit: int = 20) -> list[PerformanceRecord]:
        with self._lock:
            return list(self._records[-limit:])

    def summary(self) -> dict[str, float | int]:
        """Aggregate latency and path metrics for dashboard display."""
        with self._lock:
            records = list(self._records)
        total = len(records)
        if total == 0:
            return {
                "total_requests": 0,
                "rich_requests": 0,
                "fast_requests": 0,
                "degraded_requests": 0,
                "avg_latency_ms": 0.0,
                "p95_latency_ms": 0.0,
                "avg_chunks_found": 0.0,
            }

        latencies = sorted(record.total_ms for record in records)
        p95_index = max(0, int((len(latencies) * 0.95) - 1))
        rich = sum(1 for record in records if record.rich_path)
        return {
            "total_requests": total,
            "rich_requests": rich,
            "fast_requests": total - rich,
            "degraded_requests": sum(1 for record in records if record.degraded),
            "avg_latency_ms": sum(latencies) / total,
            "p95_latency_ms": latencies[p95_index],
            "avg_chunks_found": sum(record.chunks_found for record in records) / total,
        }

    def analyze(self) -> StrategyInsights:
        with self._lock:
            records = list(self._records)
        rich = [record for record in records if record.rich_path]
        fast = [record for record in records if not record.rich_path]

        if not records:
            return StrategyInsights(0.0, 0, 0, ["No performance data available yet"])
        if not rich or not fast:
            return StrategyInsights(
                0.0,
                len(rich),
                len(fast),
                [
                    "Need both rich-path and fast-path requests to compare",
                    f"Rich requests: {len(rich)}",
                    f"Fast requests: {len(fast)}",
                ],
            )

        avg_rich_ms = sum(r.total_ms for r in rich) / len(rich)
        avg_fast_ms = sum(r.total_ms for r in fast) / len(fast)
        avg_rich_chunks = sum(r.chunks_found for r in rich) / len(rich)
        avg_fast_chunks = sum(r.chunks_found for r in fast) / len(fast)

        quality_gain = avg_rich_chunks / (avg_fast_chunks or 1.0)
        time_cost = avg_rich_ms / avg_fast_ms if avg_fast_ms else 1.0
        benefit = quality_gain / time_cost if time_cost else 0.0

        return StrategyInsights(
            rich_path_benefit=benefit,
            rich_requests=len(rich),
            fast_requests=len(fast),
            insights=[
                f"Analyzed {len(records)} requests ({len(rich)} rich, {len(fast)} fast)",
                f"Avg rich time: {avg_rich_ms:.0f}ms vs fast: {avg_fast_ms:.0f}ms",
                f"Avg chunks found: rich={avg_rich_chunks:.1f}, fast={avg_fast_chunks:.1f}",
            ],
        )

    @staticmethod
    def _append_line(path: Path, record: PerformanceRecord) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(asdict(record)) + "\n")
        except OSError as exc:
            logger.error("Failed to write performance log %s: %s", path, exc)


class Timer:
    """Simple context timer used by the context builder."""

    def __init__(self) -> None:
        self._start = 0.0
        self.elapsed_ms = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000.0
