"""OpenTelemetry + Prometheus fallback wiring for convtree."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any

from convtree import config

logger = logging.getLogger("convtree.observability")


_initialized = False
_enabled = False
_tracer: Any | None = None
_trace_provider: Any | None = None
_meter_provider: Any | None = None

_reconstruction_counter: Any | None = None
_reconstruction_latency_hist: Any | None = None
_parser_failure_counter: Any | None = None
_resolution_counter: Any | None = None
_fetch_counter: Any | None = None

_prom_enabled = False
_prom_reconstruction_counter: Any | None = None
_prom_reconstruction_latency_hist: Any | None = None
_prom_parser_failure_counter: Any | None = None
_prom_resolution_counter: Any | None = None
_prom_fetch_counter: Any | None = None


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


def _label(value: str) -> str:
    return (value or "").strip() or "unknown"


def initialize() -> None:
    global _initialized, _enabled, _tracer, _trace_provider, _meter_provider
    global _reconstruction_counter, _reconstruction_latency_hist, _parser_failure_counter
    global _resolution_counter, _fetch_counter
    global _prom_enabled, _prom_reconstruction_counter, _prom_reconstruction_latency_hist
    global _prom_parser_failure_counter, _prom_resolution_counter, _prom_fetch_counter

    if _initialized:
        return

    _initialized = True

    if not config.OTEL_ENABLED:
        logger.info("OpenTelemetry disabled (CONVTREE_OTEL_ENABLED=false)")
        return

    try:
        from opentelemetry import metrics, trace
        from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
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
    service_name = config.OTEL_SERVICE_NAME or "convtree"

    resource = Resource.create({"service.name": service_name, "service.namespace": "convtree"})

    trace_provider = TracerProvider(resource=resource)
    trace_provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=traces_endpoint or None)))
    trace.set_tracer_provider(trace_provider)

    metric_reader = PeriodicExportingMetricReader(OTLPMetricExporter(endpoint=metrics_endpoint or None))
    meter_provider = MeterProvider(resource=resource, metric_readers=[metric_reader])
    metrics.set_meter_provider(meter_provider)
    meter = metrics.get_meter("convtree")

    _reconstruction_counter = meter.create_counter(
        "convtree_reconstructions_total",
        unit="1",
        description="Count of session reconstruction passes",
    )
    _reconstruction_latency_hist = meter.create_histogram(
        "convtree_reconstruction_latency_ms",
        unit="ms",
        description="Latency of session reconstruction passes",
    )
    _parser_failure_counter = meter.create_counter(
        "convtree_parser_failures_total",
        unit="1",
        description="Count of log lines that matched no entry model",
    )
    _resolution_counter = meter.create_counter(
        "convtree_delegation_resolutions_total",
        unit="1",
        description="Delegation lookups by matching strategy",
    )
    _fetch_counter = meter.create_counter(
        "convtree_sub_session_fetches_total",
        unit="1",
        description="Sub-session log fetches by outcome",
    )

    _trace_provider = trace_provider
    _meter_provider = meter_provider
    _tracer = trace.get_tracer("convtree")
    _enabled = True

    if config.PROM_PORT > 0:
        try:
            from prometheus_client import Counter, Histogram, start_http_server

            start_http_server(config.PROM_PORT)
            _prom_enabled = True
            _prom_reconstruction_counter = Counter(
                "convtree_reconstructions_total",
                "Count of session reconstruction passes",
                ["result"],
            )
            _prom_reconstruction_latency_hist = Histogram(
                "convtree_reconstruction_latency_ms",
                "Latency of session reconstruction passes",
                ["result"],
            )
            _prom_parser_failure_counter = Counter(
                "convtree_parser_failures_total",
                "Count of log lines that matched no entry model",
                ["parser"],
            )
            _prom_resolution_counter = Counter(
                "convtree_delegation_resolutions_total",
                "Delegation lookups by matching strategy",
                ["strategy"],
            )
            _prom_fetch_counter = Counter(
                "convtree_sub_session_fetches_total",
                "Sub-session log fetches by outcome",
                ["result"],
            )
            logger.info("Prometheus fallback metrics server listening on port %s", config.PROM_PORT)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Prometheus fallback not started: %s", exc)
            _prom_enabled = False

    logger.info("OpenTelemetry initialized (service=%s endpoint=%s)", service_name, config.OTEL_ENDPOINT)


def shutdown() -> None:
    global _enabled
    if not _initialized:
        return
    try:
        if _meter_provider is not None:
            _meter_provider.shutdown()
    except Exception:  # noqa: BLE001
        logger.debug("Meter provider shutdown failed", exc_info=True)
    try:
        if _trace_provider is not None:
            _trace_provider.shutdown()
    except Exception:  # noqa: BLE001
        logger.debug("Trace provider shutdown failed", exc_info=True)
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


def record_reconstruction(result: str, duration_ms: float) -> None:
    labels = {"result": _label(result)}
    if _enabled and _reconstruction_counter is not None:
        _reconstruction_counter.add(1, labels)
    if _enabled and _reconstruction_latency_hist is not None:
        _reconstruction_latency_hist.record(max(0.0, float(duration_ms)), labels)
    if _prom_enabled and _prom_reconstruction_counter is not None:
        _prom_reconstruction_counter.labels(result=_label(result)).inc()
    if _prom_enabled and _prom_reconstruction_latency_hist is not None:
        _prom_reconstruction_latency_hist.labels(result=_label(result)).observe(max(0.0, float(duration_ms)))


def record_parser_failure(parser: str) -> None:
    labels = {"parser": _label(parser)}
    if _enabled and _parser_failure_counter is not None:
        _parser_failure_counter.add(1, labels)
    if _prom_enabled and _prom_parser_failure_counter is not None:
        _prom_parser_failure_counter.labels(parser=_label(parser)).inc()


def record_delegation_resolution(strategy: str) -> None:
    labels = {"strategy": _label(strategy)}
    if _enabled and _resolution_counter is not None:
        _resolution_counter.add(1, labels)
    if _prom_enabled and _prom_resolution_counter is not None:
        _prom_resolution_counter.labels(**labels).inc()


def record_sub_session_fetch(result: str) -> None:
    labels = {"result": _label(result)}
    if _enabled and _fetch_counter is not None:
        _fetch_counter.add(1, labels)
    if _prom_enabled and _prom_fetch_counter is not None:
        _prom_fetch_counter.labels(**labels).inc()
