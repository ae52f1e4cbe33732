from rag_fusion.obs.tracing import PerformanceLog


def _record(log: PerformanceLog, *, rich_path: bool, total_ms: float, chunks: int) -> None:
    log.record(
        query="How does the cache decide when an entry expires?" * 2,
        rich_path=rich_path,
        reason="test",
        decision_confidence=0.8,
        document_count=2,
        conversation_length=6,
        chunks_found=chunks,
        total_ms=total_ms,
        retrieval_ms=total_ms / 2,
        cache_hit_rate=0.5,
    )


def test_summary_and_analysis() -> None:
    log = PerformanceLog()
    assert log.summary()["total_requests"] == 0
    assert log.analyze().insights == ["No performance data available yet"]

    _record(log, rich_path=True, total_ms=400.0, chunks=6)
    assert log.analyze().rich_path_benefit == 0.0

    _record(log, rich_path=False, total_ms=100.0, chunks=3)
    summary = log.summary()
    insights = log.analyze()

    assert summary["total_requests"] == 2
    assert summary["rich_requests"] == 1
    assert summary["avg_latency_ms"] == 250.0
    assert insights.rich_path_benefit == 0.5
    assert log.list_recent(1)[0].query_preview.endswith("...")


def test_log_persists_as_json_lines(tmp_path) -> None:
    path = tmp_path / "perf" / "requests.jsonl"
    log = PerformanceLog(path)
    _record(log, rich_path=False, total_ms=120.0, chunks=2)
    with path.open("a", encoding="utf-8") as handle:
        handle.write("not json\n")

    reloaded = PerformanceLog.load(path)

    assert len(reloaded.list_recent()) == 1
    assert reloaded.list_recent()[0].total_ms == 120.0
