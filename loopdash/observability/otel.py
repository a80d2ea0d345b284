"""OpenTelemetry + Prometheus fallback wiring for loopdash."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any

from loopdash import config

logger = logging.getLogger("loopdash.observability")


_initialized = False
_enabled = False
_tracer: Any | None = None
_trace_provider: Any | None = None
_meter_provider: Any | None = None
_fastapi_instrumentor: Any | None = None

_rotation_counter: Any | None = None
_purged_counter: Any | None = None
_cancel_counter: Any | None = None
_history_delete_counter: Any | None = None

_prom_enabled = False
_prom_rotation_counter: Any | None = None
_prom_purged_counter: Any | None = None
_prom_cancel_counter: Any | None = None
_prom_history_delete_counter: Any | None = None


def _normalize_otlp_endpoint(base_endpoint: str, signal_path: str) -> str:
    endpoint = (base_endpoint or "").strip()
    if not endpoint:
        return ""
    if endpoint.endswith(signal_path):
        return endpoint
    if endpoint.endswith("/"):
        endpoint = endpoint[:-1]
    if endpoint.endswith("/v1"):
        return f"{endpoint}{signal_path[3:]}"
    return f"{endpoint}{signal_path}"


def initialize(app: Any | None = None) -> None:
    global _initialized, _enabled, _tracer, _trace_provider, _meter_provider, _fastapi_instrumentor
    global _rotation_counter, _purged_counter, _cancel_counter, _history_delete_counter
    global _prom_enabled, _prom_rotation_counter, _prom_purged_counter
    global _prom_cancel_counter, _prom_history_delete_counter

    if _initialized:
        if _enabled and app and _fastapi_instrumentor:
            _fastapi_instrumentor.instrument_app(app)
        return

    _initialized = True

    if not config.OTEL_ENABLED:
        logger.info("OpenTelemetry disabled (LOOPDASH_OTEL_ENABLED=false)")
        return

    try:
        from opentelemetry import metrics, trace
        from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
        from opentelemetry.sdk.metrics import MeterProvider
        from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
    except ImportError as exc:
        logger.warning("OpenTelemetry dependencies unavailable: %s", exc)
        return

    traces_endpoint = _normalize_otlp_endpoint(config.OTEL_ENDPOINT, "/v1/traces")
    metrics_endpoint = _normalize_otlp_endpoint(config.OTEL_ENDPOINT, "/v1/metrics")
    service_name = config.OTEL_SERVICE_NAME or "loopdash"

    resource = Resource.create({"service.name": service_name, "service.namespace": "loopdash"})

    trace_provider = TracerProvider(resource=resource)
    trace_provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=traces_endpoint or None)))
    trace.set_tracer_provider(trace_provider)

    metric_reader = PeriodicExportingMetricReader(OTLPMetricExporter(endpoint=metrics_endpoint or None))
    meter_provider = MeterProvider(resource=resource, metric_readers=[metric_reader])
    metrics.set_meter_provider(meter_provider)
    meter = metrics.get_meter("loopdash")

    _rotation_counter = meter.create_counter(
        "loopdash_rotations_total",
        unit="1",
        description="Log rotation runs by result",
    )
    _purged_counter = meter.create_counter(
        "loopdash_sessions_purged_total",
        unit="1",
        description="Completed sessions removed by rotation",
    )
    _cancel_counter = meter.create_counter(
        "loopdash_cancellations_total",
        unit="1",
        description="Loop cancellation attempts by result",
    )
    _history_delete_counter = meter.create_counter(
        "loopdash_history_deletions_total",
        unit="1",
        description="Sessions deleted from history",
    )

    _trace_provider = trace_provider
    _meter_provider = meter_provider
    _tracer = trace.get_tracer("loopdash")
    _fastapi_instrumentor = FastAPIInstrumentor()
    _enabled = True

    if app:
        _fastapi_instrumentor.instrument_app(app)

    if config.PROM_PORT > 0:
        try:
            from prometheus_client import Counter, start_http_server

            start_http_server(config.PROM_PORT)
            _prom_rotation_counter = Counter("loopdash_rotations_total", "Log rotation runs by result", ["result"])
            _prom_purged_counter = Counter("loopdash_sessions_purged_total", "Completed sessions removed by rotation")
            _prom_cancel_counter = Counter("loopdash_cancellations_total", "Loop cancellation attempts by result", ["result"])
            _prom_history_delete_counter = Counter("loopdash_history_deletions_total", "Sessions deleted from history")
            _prom_enabled = True
            logger.info("Prometheus fallback metrics server listening on port %s", config.PROM_PORT)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Prometheus fallback not started: %s", exc)
            _prom_enabled = False

    logger.info("OpenTelemetry initialized (service=%s endpoint=%s)", service_name, config.OTEL_ENDPOINT)


def shutdown(app: Any | None = None) -> None:
    global _enabled
    if not _initialized:
        return
    try:
        if app and _fastapi_instrumentor:
            _fastapi_instrumentor.uninstrument_app(app)
    except Exception:
        pass
    try:
        if _meter_provider is not None:
            _meter_provider.shutdown()
    except Exception:
        pass
    try:
        if _trace_provider is not None:
            _trace_provider.shutdown()
    except Exception:
        pass
    _enabled = False


@contextmanager
def start_span(name: str, attributes: dict[str, Any] | None = None):
    if not _enabled or _tracer is None:
        yield None
        return
    with _tracer.start_as_current_span(name) as span:
        if attributes:
            for key, value in attributes.items():
                if value is not None:
                    span.set_attribute(key, value)
        yield span


def _result_label(success: bool) -> str:
    return "success" if success else "failure"


def record_rotation(result: Any) -> None:
    label = _result_label(bool(getattr(result, "success", False)))
    purged = max(0, int(getattr(result, "sessionsPurged", 0) or 0))
    if _enabled and _rotation_counter is not None:
        _rotation_counter.add(1, {"result": label})
    if _enabled and _purged_counter is not None and purged:
        _purged_counter.add(purged)
    if _prom_enabled and _prom_rotation_counter is not None:
        _prom_rotation_counter.labels(result=label).inc()
    if _prom_enabled and _prom_purged_counter is not None and purged:
        _prom_purged_counter.inc(purged)


def record_cancellation(success: bool) -> None:
    label = _result_label(success)
    if _enabled and _cancel_counter is not None:
        _cancel_counter.add(1, {"result": label})
    if _prom_enabled and _prom_cancel_counter is not None:
        _prom_cancel_counter.labels(result=label).inc()


def record_history_deletion(count: int) -> None:
    safe_count = max(0, int(count))
    if safe_count == 0:
        return
    if _enabled and _history_delete_counter is not None:
        _history_delete_counter.add(safe_count)
    if _prom_enabled and _prom_history_delete_counter is not None:
        _prom_history_delete_counter.inc(safe_count)
