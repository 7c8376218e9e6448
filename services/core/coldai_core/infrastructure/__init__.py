"""Infrastructure components for the Cold AI dashboard.

This package contains adapters to external systems:
- Edge function HTTP client
- Realtime change notifications over Redis
"""

from coldai_core.infrastructure.edge_functions import (
    EdgeFunctionClient,
    EdgeFunctionConfig,
    EdgeFunctionConnectionError,
    EdgeFunctionError,
    EdgeFunctionNotConfiguredError,
    EdgeFunctionResponseError,
    EdgeFunctionTimeoutError,
)
from coldai_core.infrastructure.realtime import (
    ChangeBus,
    ChangeEvent,
    ChangePublisher,
)

__all__ = [
    "ChangeBus",
    "ChangeEvent",
    "ChangePublisher",
    "EdgeFunctionClient",
    "EdgeFunctionConfig",
    "EdgeFunctionConnectionError",
    "EdgeFunctionError",
    "EdgeFunctionNotConfiguredError",
    "EdgeFunctionResponseError",
    "EdgeFunctionTimeoutError",
]
