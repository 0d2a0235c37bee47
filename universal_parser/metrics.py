"""Prometheus metrics for the universal product parser."""

from prometheus_client import Counter, Histogram, Info

# Application info
app_info = Info("universal_parser", "Universal product parser application info")
app_info.info({"version": "3.2.0", "name": "universal-parser"})

# Extraction metrics
extractions_total = Counter(
    "parser_extractions_total",
    "Total number of extract() calls by outcome",
    ["outcome"],
)

extraction_duration_seconds = Histogram(
    "parser_extraction_duration_seconds",
    "Time spent producing a product record",
    ["strategy"],
    buckets=[0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 20.0, 45.0],
)

# Strategy metrics
strategy_attempts_total = Counter(
    "parser_strategy_attempts_total",
    "Fetch strategy attempts",
    ["strategy"],
)

strategy_successes_total = Counter(
    "parser_strategy_successes_total",
    "Fetch strategy attempts that produced a confident record",
    ["strategy"],
)

strategy_errors_total = Counter(
    "parser_strategy_errors_total",
    "Fetch strategy attempts that raised",
    ["strategy", "error_type"],
)

escalations_total = Counter(
    "parser_escalations_total",
    "Escalations from one fetch strategy to the other",
    ["from_strategy", "to_strategy", "reason"],
)

# Cache metrics
cache_lookups_total = Counter(
    "parser_cache_lookups_total",
    "Result cache lookups",
    ["result"],
)

# Image metrics
image_probes_total = Counter(
    "parser_image_probes_total",
    "HEAD probes issued against candidate image URLs",
    ["status"],
)

# Learning metrics
pattern_learning_total = Counter(
    "parser_pattern_learning_total",
    "Pattern store learning events",
    ["status"],
)


def record_extraction(outcome: str, strategy: str | None, duration: float):
    """Record a finished extract() call."""
    extractions_total.labels(outcome=outcome).inc()
    extraction_duration_seconds.labels(strategy=strategy or "none").observe(duration)


def record_fetch_strategy_attempt(strategy: str):
    """Record a fetch strategy attempt."""
    strategy_attempts_total.labels(strategy=strategy).inc()


def record_fetch_strategy_success(strategy: str):
    """Record a fetch strategy success."""
    strategy_successes_total.labels(strategy=strategy).inc()


def record_fetch_strategy_error(strategy: str, error_type: str):
    """Record a fetch strategy failure."""
    strategy_errors_total.labels(strategy=strategy, error_type=error_type).inc()


def record_escalation(from_strategy: str, to_strategy: str, reason: str):
    """Record an escalation to the alternate strategy."""
    escalations_total.labels(
        from_strategy=from_strategy, to_strategy=to_strategy, reason=reason
    ).inc()


def record_cache_lookup(hit: bool):
    """Record a result cache hit or miss."""
    cache_lookups_total.labels(result="hit" if hit else "miss").inc()


def record_image_probe(ok: bool):
    """Record an image probe result."""
    image_probes_total.labels(status="ok" if ok else "failed").inc()


def record_pattern_learning(status: str):
    """Record a pattern learning event (learned, throttled, skipped, error)."""
    pattern_learning_total.labels(status=status).inc()
