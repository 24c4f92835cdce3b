"""OpenTelemetry metrics for the sync engine.

Instruments
-----------
  contactsync.sync.pushes_total           Counter  (labels: op, outcome)
      One increment per remote push attempt.  ``op`` is create|update|delete,
      ``outcome`` is ok|failed.

  contactsync.sync.dirty_records          Histogram
      Size of the dirty set seen at the start of each reconciliation pass.

  contactsync.sync.reconcile_duration_ms  Histogram
      Wall-clock duration of one reconciliation pass.

When OTEL_EXPORTER_OTLP_ENDPOINT is not set the global no-op MeterProvider is
used and every recording is silent.
"""

from __future__ import annotations

import logging
import os

from opentelemetry import metrics

logger = logging.getLogger(__name__)

_METER_NAME = "contactsync"


def init_metrics(service_name: str) -> metrics.Meter:
    """Install an OTLP-exporting MeterProvider when an endpoint is configured."""
    endpoint = os.environ.get("OTEL_EXPORTER_OTLP_ENDPOINT")

    if not endpoint:
        logger.info("OTEL_EXPORTER_OTLP_ENDPOINT not set, using no-op meter")
        return metrics.get_meter(_METER_NAME)

    # SDK/exporter only needed when exporting
    from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
    from opentelemetry.sdk.metrics import MeterProvider
    from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
    from opentelemetry.sdk.resources import Resource

    resource = Resource.create({"service.name": service_name})
    exporter = OTLPMetricExporter(endpoint=endpoint)
    reader = PeriodicExportingMetricReader(exporter, export_interval_millis=15_000)
    provider = MeterProvider(resource=resource, metric_readers=[reader])

    metrics.set_meter_provider(provider)
    logger.info("Metrics initialized: service=%s, endpoint=%s", service_name, endpoint)

    return metrics.get_meter(_METER_NAME)


def get_meter() -> metrics.Meter:
    """Return a Meter from the current global provider (no-op before init)."""
    return metrics.get_meter(_METER_NAME)


class SyncMetrics:
    """Lazily created sync instruments.

    Safe to construct before ``init_metrics``; recordings are no-ops until a
    real provider is installed.
    """

    def __init__(self) -> None:
        self.__pushes: metrics.Counter | None = None
        self.__dirty: metrics.Histogram | None = None
        self.__duration: metrics.Histogram | None = None

    @property
    def _pushes(self) -> metrics.Counter:
        if self.__pushes is None:
            self.__pushes = get_meter().create_counter(
                name="contactsync.sync.pushes_total",
                description="Remote push attempts by operation and outcome",
                unit="requests",
            )
        return self.__pushes

    @property
    def _dirty(self) -> metrics.Histogram:
        if self.__dirty is None:
            self.__dirty = get_meter().create_histogram(
                name="contactsync.sync.dirty_records",
                description="Dirty records found at the start of a reconciliation pass",
                unit="records",
            )
        return self.__dirty

    @property
    def _duration(self) -> metrics.Histogram:
        if self.__duration is None:
            self.__duration = get_meter().create_histogram(
                name="contactsync.sync.reconcile_duration_ms",
                description="Duration of one reconciliation pass in milliseconds",
                unit="ms",
            )
        return self.__duration

    def record_push(self, op: str, *, ok: bool) -> None:
        self._pushes.add(1, {"op": op, "outcome": "ok" if ok else "failed"})

    def record_dirty_records(self, count: int) -> None:
        self._dirty.record(count)

    def record_reconcile_duration(self, duration_ms: float) -> None:
        self._duration.record(duration_ms)
