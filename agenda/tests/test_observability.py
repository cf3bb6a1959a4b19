import logging

import pytest

from agenda.core.logging import (
    ConsoleFormatter,
    ContextFilter,
    bind_request,
    get_company_id,
    get_request_id,
    latency_bucket_ms,
)
from agenda.core.metrics import METRICS, Counter, normalize_path, plan_access_denied_total


def make_record(msg="hello"):
    return logging.LogRecord("agenda", logging.INFO, __file__, 1, msg, None, None)


def test_bind_request_scopes_ids_to_block():
    with bind_request("rid-1", 7):
        assert get_request_id() == "rid-1"
        assert get_company_id() == 7
    assert get_request_id() is None
    assert get_company_id() is None


def test_context_filter_fills_bound_ids():
    record = make_record()
    with bind_request("rid-2", 3):
        assert ContextFilter().filter(record)
    assert record.request_id == "rid-2"
    assert record.company_id == 3

    line = ConsoleFormatter().format(record)
    assert "[rid=rid-2]" in line
    assert "[company=3]" in line
    assert line.endswith("hello")


@pytest.mark.parametrize(
    "latency, bucket",
    [(None, "unknown"), (10, "<50ms"), (50, "50-250ms"), (999, "250-1000ms"), (1000, ">=1000ms")],
)
def test_latency_buckets(latency, bucket):
    assert latency_bucket_ms(latency) == bucket


def test_normalize_path_collapses_ids():
    assert normalize_path("/api/company/appointments/42") == "/api/company/appointments/:id"
    assert normalize_path("/api/plans/") == "/api/plans"
    assert normalize_path("/x/123e4567-e89b-12d3-a456-426614174000") == "/x/:id"


def test_counter_rejects_unknown_labels_and_negative_amounts():
    with pytest.raises(ValueError):
        plan_access_denied_total.inc(labels={"tenant": "1"})
    with pytest.raises(ValueError):
        Counter("scratch_total", "scratch").inc(amount=-1)


def test_registry_refuses_kind_change():
    with pytest.raises(ValueError):
        METRICS.gauge("plan_access_denied_total", "clash")
