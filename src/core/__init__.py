"""
Core library: reusable, backend-agnostic components.

Modules:
    auth        - Bearer token providers (client credential, managed identity,
                  workload identity, Azure CLI) with caching and health resets
    resilience  - Retry with exponential backoff and jitter
    logging     - Structured JSON logging with context propagation
    errors      - Error classification and exception hierarchy
    utils       - JSON serialization, worker ids

Design Principles:
    - No dependencies on the ingestion layer
    - All modules are independently testable
"""

from .types import ErrorCategory, TokenProvider

__version__ = "0.1.0"

__all__ = [
    "ErrorCategory",
    "TokenProvider",
]
