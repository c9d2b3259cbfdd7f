"""Tests for the in-memory tool-call metrics collector."""


def test_snapshot_aggregates_per_tool(metrics_collector):
    for latency in (10, 20, 30, 40):
        metrics_collector.record_tool_call(tool_name="getProduct", status="ok", latency_ms=latency)
    metrics_collector.record_tool_call(tool_name="getProduct", status="error", latency_ms=50)

    stats = metrics_collector.snapshot()["tools"]["getProduct"]
    assert stats["count"] == 5
    assert stats["success_rate"] == 0.8
    assert stats["latency_p50_ms"] == 30.0
    assert stats["latency_p95_ms"] == 48.0


def test_turn_summary_is_popped_once(metrics_collector):
    metrics_collector.record_tool_call(
        tool_name="searchProductsByQuery", status="ok", latency_ms=12.5, turn_id="t-1", session_id="s-1",
    )
    metrics_collector.record_tool_call(
        tool_name="addToCart", status="error", latency_ms=7.5, turn_id="t-1", session_id="s-1",
    )

    summary = metrics_collector.pop_turn_summary("t-1")
    assert summary["tool_call_count"] == 2
    assert summary["tool_error_count"] == 1
    assert summary["total_latency_ms"] == 20.0
    assert metrics_collector.pop_turn_summary("t-1") == {}


def test_reset(metrics_collector):
    metrics_collector.record_tool_call(tool_name="getProduct", status="ok", latency_ms=1)
    metrics_collector.reset()
    assert metrics_collector.snapshot() == {"tools": {}}
