"""
Prometheus metrics for the file store.

Provides counters, histograms, and gauges for tracking:
- Storage adapter operations per backend
- Metadata cache and materialization cache effectiveness
- Image derivations and placeholder substitutions
- Upload rejections
"""

from functools import wraps
from typing import Callable

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

# Create a global registry
REGISTRY = CollectorRegistry()

# ========== Counters ==========

storage_operations_total = Counter(
    "storage_operations_total",
    "Total number of storage adapter operations",
    ["backend", "operation", "status"],  # fs/s3, upload/copy/..., success/failure
    registry=REGISTRY,
)

metadata_cache_requests_total = Counter(
    "metadata_cache_requests_total",
    "Metadata cache lookups",
    ["result"],  # hit/miss
    registry=REGISTRY,
)

materializations_total = Counter(
    "materializations_total",
    "Requests for a local copy of stored content",
    ["result"],  # hit/download
    registry=REGISTRY,
)

image_derivations_total = Counter(
    "image_derivations_total",
    "Image derivation requests",
    ["outcome"],  # cached/rendered/icon/not_found/processing_failed
    registry=REGISTRY,
)

upload_rejections_total = Counter(
    "upload_rejections_total",
    "Uploads rejected by the validator",
    ["reason"],  # type/size
    registry=REGISTRY,
)

# ========== Histograms ==========

remote_download_duration_seconds = Histogram(
    "remote_download_duration_seconds",
    "Time to download an object into the local cache",
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
    registry=REGISTRY,
)

image_transform_duration_seconds = Histogram(
    "image_transform_duration_seconds",
    "Time to render an image derivative",
    buckets=(0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0),
    registry=REGISTRY,
)

# ========== Gauges ==========

metadata_cache_entries = Gauge(
    "metadata_cache_entries",
    "Number of entries held by the metadata cache",
    registry=REGISTRY,
)


# ========== Metric Decorators ==========

def track_storage_operation(backend: str, operation: str):
    """
    Decorator counting adapter operations by outcome.

    Args:
        backend: Backend name (fs/s3)
        operation: Operation name (upload/copy/delete/...)
    """
    def decorator(func: Callable):
        @wraps(func)
        def wrapper(*args, **kwargs):
            status = "success"
            try:
                return func(*args, **kwargs)
            except Exception:
                status = "failure"
                raise
            finally:
                storage_operations_total.labels(
                    backend=backend, operation=operation, status=status).inc()

        return wrapper
    return decorator


def get_metrics() -> bytes:
    """
    Get current metrics in Prometheus format.

    Returns:
        Metrics as bytes
    """
    return generate_latest(REGISTRY)


def get_metrics_content_type() -> str:
    """Get content type for metrics response."""
    return CONTENT_TYPE_LATEST
