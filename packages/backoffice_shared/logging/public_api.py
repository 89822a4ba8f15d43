"""Composable instrumentation for public service API methods.

One decorator carries invocation/completion events to a set of concerns:
structured logging, OpenTelemetry tracing, and OpenTelemetry metrics. A
failing concern is reported and never breaks the decorated call.
"""

from __future__ import annotations

from contextvars import ContextVar
from dataclasses import dataclass
from functools import lru_cache, wraps
from time import perf_counter
from typing import Any, Callable, Mapping, Protocol, Sequence

from opentelemetry import metrics as otel_metrics
from opentelemetry import trace as otel_trace
from opentelemetry.trace import Status, StatusCode

from packages.backoffice_shared.config import load_settings

from . import fields
from .context import log_context


@dataclass(frozen=True)
class InvocationContext:
    """Structured metadata describing one public API invocation."""

    component_id: str
    api_name: str
    trace_id: str | None
    envelope_id: str | None
    principal: str | None
    references: Mapping[str, str]


@dataclass(frozen=True)
class CompletionContext:
    """Structured metadata describing one completed public API invocation."""

    invocation: InvocationContext
    success: bool
    duration_ms: float
    errors: list[str]
    error_categories: list[str]


class PublicApiInstrumentationConcern(Protocol):
    """Hook contract for one public API instrumentation concern."""

    def on_invocation(self, context: InvocationContext) -> None:
        """Handle invocation-start event for one method call."""

    def on_completion(self, context: CompletionContext) -> None:
        """Handle completion event for one method call."""


class PublicApiLoggingConcern:
    """Logging concern for invocation/completion events."""

    def __init__(self, *, logger: Any) -> None:
        self._logger = logger

    def on_invocation(self, context: InvocationContext) -> None:
        with log_context(_invocation_log_context(context)):
            self._logger.info("Public API invocation")

    def on_completion(self, context: CompletionContext) -> None:
        payload = _invocation_log_context(context.invocation)
        payload.update(
            {
                fields.EVENT: fields.PUBLIC_API_COMPLETION_EVENT,
                fields.SUCCESS: context.success,
                fields.DURATION_MS: context.duration_ms,
                fields.ERRORS: context.errors,
            }
        )
        with log_context(payload):
            if context.success:
                self._logger.info("Public API completion")
            else:
                self._logger.warning("Public API completion")


class _CounterLike(Protocol):
    def add(self, amount: int | float, attributes: Mapping[str, str]) -> None: ...


class _HistogramLike(Protocol):
    def record(self, amount: float, attributes: Mapping[str, str]) -> None: ...


@dataclass(frozen=True)
class _TraceScope:
    """One in-flight span for a decorated API invocation."""

    manager: Any
    span: Any


class PublicApiTracingConcern:
    """Tracing concern opening one span per public API invocation."""

    def __init__(self, *, tracer: Any) -> None:
        self._tracer = tracer
        self._active_scopes: ContextVar[tuple[_TraceScope, ...]] = ContextVar(
            "public_api_tracing_scopes", default=()
        )

    def on_invocation(self, context: InvocationContext) -> None:
        manager = self._tracer.start_as_current_span(
            f"public_api.{context.component_id}.{context.api_name}"
        )
        span = manager.__enter__()
        span.set_attribute(fields.COMPONENT_ID, context.component_id)
        span.set_attribute(fields.API_NAME, context.api_name)
        for key, value in (
            (fields.TRACE_ID, context.trace_id),
            (fields.ENVELOPE_ID, context.envelope_id),
            (fields.PRINCIPAL, context.principal),
        ):
            if value is not None:
                span.set_attribute(key, value)
        for key, value in context.references.items():
            span.set_attribute(f"reference.{key}", value)
        self._active_scopes.set(
            (*self._active_scopes.get(), _TraceScope(manager=manager, span=span))
        )

    def on_completion(self, context: CompletionContext) -> None:
        scopes = self._active_scopes.get()
        if not scopes:
            return
        scope = scopes[-1]
        self._active_scopes.set(scopes[:-1])

        scope.span.set_attribute(fields.SUCCESS, context.success)
        scope.span.set_attribute(fields.DURATION_MS, context.duration_ms)
        scope.span.set_attribute(
            fields.OUTCOME, "success" if context.success else "failure"
        )
        scope.span.set_attribute("errors.count", len(context.errors))
        if not context.success:
            scope.span.set_status(Status(StatusCode.ERROR))
        scope.manager.__exit__(None, None, None)


class PublicApiMetricsConcern:
    """Metrics concern counting calls, latency, and failures by category."""

    def __init__(
        self,
        *,
        public_api_calls_total: _CounterLike,
        public_api_duration_ms: _HistogramLike,
        public_api_errors_total: _CounterLike,
    ) -> None:
        self._public_api_calls_total = public_api_calls_total
        self._public_api_duration_ms = public_api_duration_ms
        self._public_api_errors_total = public_api_errors_total

    def on_invocation(self, context: InvocationContext) -> None:
        del context

    def on_completion(self, context: CompletionContext) -> None:
        attrs = {
            fields.COMPONENT_ID: context.invocation.component_id,
            fields.API_NAME: context.invocation.api_name,
            fields.OUTCOME: "success" if context.success else "failure",
        }
        self._public_api_calls_total.add(1, attributes=attrs)
        self._public_api_duration_ms.record(context.duration_ms, attributes=attrs)
        if context.success:
            return
        for category in context.error_categories or ["unknown"]:
            self._public_api_errors_total.add(
                1,
                attributes={
                    fields.COMPONENT_ID: context.invocation.component_id,
                    fields.API_NAME: context.invocation.api_name,
                    fields.ERROR_CATEGORY: category,
                },
            )


def public_api_instrumented(
    *,
    component_id: str,
    api_name: str | None = None,
    id_fields: tuple[str, ...] = (),
    concerns: Sequence[PublicApiInstrumentationConcern] | None = None,
    logger: Any | None = None,
    include_otel: bool = True,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Decorate one public API method with composable instrumentation concerns.

    Keyword arguments named in ``id_fields`` are attached to every event as
    references; the ``meta`` keyword argument supplies correlation ids.
    """
    resolved: tuple[PublicApiInstrumentationConcern, ...] = tuple(concerns or ())
    if include_otel:
        resolved = (
            *resolved,
            _default_public_api_tracing_concern(),
            _default_public_api_metrics_concern(),
        )
    if logger is not None:
        resolved = (PublicApiLoggingConcern(logger=logger), *resolved)
    if not resolved:
        raise ValueError("public_api_instrumented requires at least one concern")

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        method_name = api_name or func.__name__

        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            meta = kwargs.get("meta")
            invocation = InvocationContext(
                component_id=component_id,
                api_name=method_name,
                trace_id=_attr_or_none(meta, "trace_id"),
                envelope_id=_attr_or_none(meta, "envelope_id"),
                principal=_attr_or_none(meta, "principal"),
                references={
                    name: str(kwargs[name])
                    for name in id_fields
                    if kwargs.get(name) not in (None, "")
                },
            )
            _dispatch(resolved, "invocation", invocation, invocation, logger)

            started = perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as exc:
                completion = CompletionContext(
                    invocation=invocation,
                    success=False,
                    duration_ms=_elapsed_ms(started),
                    errors=[f"{type(exc).__name__}: {exc}"],
                    error_categories=["internal"],
                )
                _dispatch(resolved, "completion", completion, invocation, logger)
                raise

            errors = _error_summaries(result)
            ok_value = getattr(result, "ok", None)
            completion = CompletionContext(
                invocation=invocation,
                success=ok_value if isinstance(ok_value, bool) else not errors,
                duration_ms=_elapsed_ms(started),
                errors=errors,
                error_categories=_error_categories(result),
            )
            _dispatch(resolved, "completion", completion, invocation, logger)
            return result

        return wrapper

    return decorator


def _elapsed_ms(started: float) -> float:
    return round((perf_counter() - started) * 1000.0, 3)


def _attr_or_none(obj: object | None, name: str) -> str | None:
    """Return string attribute value from object when present."""
    value = getattr(obj, name, None) if obj is not None else None
    if value in (None, ""):
        return None
    return str(value)


def _error_items(result: object) -> list[object]:
    errors = getattr(result, "errors", [])
    return list(errors) if isinstance(errors, (list, tuple)) else []


def _error_summaries(result: object) -> list[str]:
    """Return one-line ``code: message`` summaries for result errors."""
    summaries: list[str] = []
    for item in _error_items(result):
        code = getattr(item, "code", None)
        message = getattr(item, "message", None)
        if message in (None, ""):
            continue
        summaries.append(str(message) if code in (None, "") else f"{code}: {message}")
    return summaries


def _error_categories(result: object) -> list[str]:
    categories: list[str] = []
    for item in _error_items(result):
        raw = getattr(item, "category", None)
        category = getattr(raw, "value", raw)
        if category not in (None, ""):
            categories.append(str(category))
    return categories


def _invocation_log_context(context: InvocationContext) -> dict[str, object]:
    return {
        fields.EVENT: fields.PUBLIC_API_INVOCATION_EVENT,
        fields.COMPONENT_ID: context.component_id,
        fields.API_NAME: context.api_name,
        fields.TRACE_ID: context.trace_id,
        fields.ENVELOPE_ID: context.envelope_id,
        fields.PRINCIPAL: context.principal,
        **context.references,
    }


def _dispatch(
    concerns: Sequence[PublicApiInstrumentationConcern],
    stage: str,
    context: InvocationContext | CompletionContext,
    invocation: InvocationContext,
    logger: Any | None,
) -> None:
    """Send one event to every concern, isolating concern failures."""
    for concern in concerns:
        try:
            if stage == "invocation":
                concern.on_invocation(context)  # type: ignore[arg-type]
            else:
                concern.on_completion(context)  # type: ignore[arg-type]
        except Exception as exc:  # noqa: BLE001
            _report_concern_failure(
                logger=logger,
                stage=stage,
                concern=type(concern).__name__,
                exc=exc,
                invocation=invocation,
            )


def _report_concern_failure(
    *,
    logger: Any | None,
    stage: str,
    concern: str,
    exc: Exception,
    invocation: InvocationContext,
) -> None:
    _default_otel_instruments().instrumentation_failures_total.add(
        1,
        attributes={
            fields.COMPONENT_ID: invocation.component_id,
            fields.API_NAME: invocation.api_name,
            fields.STAGE: stage,
            fields.CONCERN: concern,
        },
    )
    if logger is None:
        return
    with log_context(
        {
            fields.EVENT: fields.PUBLIC_API_INSTRUMENTATION_FAILURE_EVENT,
            fields.COMPONENT_ID: invocation.component_id,
            fields.API_NAME: invocation.api_name,
            fields.STAGE: stage,
            fields.CONCERN: concern,
            fields.ERRORS: [f"{type(exc).__name__}: {exc}"],
        }
    ):
        logger.warning("Public API instrumentation concern failed")


@dataclass(frozen=True)
class _OtelInstruments:
    """Resolved OTel instruments used by the metrics concern."""

    public_api_calls_total: _CounterLike
    public_api_duration_ms: _HistogramLike
    public_api_errors_total: _CounterLike
    instrumentation_failures_total: _CounterLike


@lru_cache(maxsize=1)
def _otel_names() -> Any:
    """Resolve tracer, meter, and metric names from settings."""
    return load_settings().observability.public_api.otel


@lru_cache(maxsize=1)
def _default_public_api_tracing_concern() -> PublicApiTracingConcern:
    return PublicApiTracingConcern(
        tracer=otel_trace.get_tracer(_otel_names().tracer_name)
    )


@lru_cache(maxsize=1)
def _default_public_api_metrics_concern() -> PublicApiMetricsConcern:
    instruments = _default_otel_instruments()
    return PublicApiMetricsConcern(
        public_api_calls_total=instruments.public_api_calls_total,
        public_api_duration_ms=instruments.public_api_duration_ms,
        public_api_errors_total=instruments.public_api_errors_total,
    )


@lru_cache(maxsize=1)
def _default_otel_instruments() -> _OtelInstruments:
    names = _otel_names()
    meter = otel_metrics.get_meter(names.meter_name)
    return _OtelInstruments(
        public_api_calls_total=meter.create_counter(
            name=names.metric_public_api_calls_total,
            description="Count of public API invocations by component/method/outcome.",
            unit="1",
        ),
        public_api_duration_ms=meter.create_histogram(
            name=names.metric_public_api_duration_ms,
            description="Public API invocation latency in milliseconds.",
            unit="ms",
        ),
        public_api_errors_total=meter.create_counter(
            name=names.metric_public_api_errors_total,
            description="Count of public API failures by error category.",
            unit="1",
        ),
        instrumentation_failures_total=meter.create_counter(
            name=names.metric_instrumentation_failures_total,
            description="Count of instrumentation concern failures.",
            unit="1",
        ),
    )
