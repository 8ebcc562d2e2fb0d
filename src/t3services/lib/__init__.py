"""Protocol-agnostic utilities used by the T3 client.

Modules:
- headers: Case-insensitive header lookup (insensitive_get)
- metrics: Per-request-kind call/error/duration tracking
- singleflight: Coalesce concurrent calls into one in-flight task
"""

from t3services.lib.headers import insensitive_get
from t3services.lib.metrics import EndpointMetrics, RequestMetrics
from t3services.lib.singleflight import SingleFlight

__all__ = [
    # Headers
    "insensitive_get",
    # Metrics
    "EndpointMetrics",
    "RequestMetrics",
    # Singleflight
    "SingleFlight",
]
