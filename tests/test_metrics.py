"""Tests for OpenTelemetry session metrics."""

from collections.abc import Callable
from typing import Any

import pytest
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import InMemoryMetricReader

from parlor import SessionMetrics

pytestmark = pytest.mark.anyio

SessionFactory = Callable[..., Any]


@pytest.fixture
def metric_reader() -> InMemoryMetricReader:
    """Create an in-memory metric reader for testing."""
    return InMemoryMetricReader()


@pytest.fixture
def meter_provider(metric_reader: InMemoryMetricReader) -> MeterProvider:
    """Create a meter provider with in-memory reader."""
    return MeterProvider(metric_readers=[metric_reader])


def metric_points(
    metric_reader: InMemoryMetricReader,
    metric_name: str,
) -> dict[tuple[tuple[str, Any], ...], int | float]:
    """Map of sorted attribute items to data point value for one metric."""
    data = metric_reader.get_metrics_data()
    assert data is not None, "No metrics data available"
    points: dict[tuple[tuple[str, Any], ...], int | float] = {}
    for resource_metric in data.resource_metrics:
        for scope_metric in resource_metric.scope_metrics:
            for metric in scope_metric.metrics:
                if metric.name != metric_name:
                    continue
                for point in metric.data.data_points:
                    key = tuple(sorted((point.attributes or {}).items()))
                    points[key] = point.value
    if not points:
        raise ValueError(f"Metric {metric_name} not found")
    return points


class TestSessionMetrics:
    async def test_join_outcomes(
        self,
        run_session: SessionFactory,
        meter_provider: MeterProvider,
        metric_reader: InMemoryMetricReader,
    ) -> None:
        metrics = SessionMetrics(meter_provider)
        async with run_session(metrics=metrics) as session:
            first = session.accept()
            second = session.accept()
            await session.join(first.id, "alice")
            await session.join(second.id, "alice")

        assert metric_points(metric_reader, "parlor.connections.accepted") == {(): 2}
        assert metric_points(metric_reader, "parlor.joins") == {
            (("outcome", "accepted"),): 1,
            (("outcome", "duplicate"),): 1,
        }

    async def test_online_users_gauge(
        self,
        run_session: SessionFactory,
        meter_provider: MeterProvider,
        metric_reader: InMemoryMetricReader,
    ) -> None:
        metrics = SessionMetrics(meter_provider)
        async with run_session(metrics=metrics) as session:
            alice = session.accept()
            bob = session.accept()
            await session.join(alice.id, "alice")
            await session.join(bob.id, "bob")
            await session.leave(bob.id)

            assert metric_points(metric_reader, "parlor.users.online") == {(): 1}

    async def test_messages_by_kind(
        self,
        run_session: SessionFactory,
        meter_provider: MeterProvider,
        metric_reader: InMemoryMetricReader,
    ) -> None:
        metrics = SessionMetrics(meter_provider)
        async with run_session(metrics=metrics) as session:
            alice = session.accept()
            await session.join(alice.id, "alice")
            await session.send_text(alice.id, "hi")
            await session.send_text(alice.id, "again")

        assert metric_points(metric_reader, "parlor.messages.broadcast") == {
            (("kind", "system-notice"),): 1,
            (("kind", "user-message"),): 2,
        }

    async def test_delivery_failures(
        self,
        run_session: SessionFactory,
        meter_provider: MeterProvider,
        metric_reader: InMemoryMetricReader,
    ) -> None:
        metrics = SessionMetrics(meter_provider)
        async with run_session(metrics=metrics) as session:
            alice = session.accept()
            bob = session.accept()
            await session.join(alice.id, "alice")
            await session.join(bob.id, "bob")
            bob.close_outbox()
            await session.send_text(alice.id, "hello")

        assert metric_points(metric_reader, "parlor.delivery.failures") == {(): 1}

    def test_uses_global_provider_by_default(self) -> None:
        # The API's default provider is a no-op; recording must not fail.
        metrics = SessionMetrics()
        metrics.connection_accepted()
        metrics.join_accepted()
        metrics.user_left()
