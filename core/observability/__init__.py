"""
Observability Module for the grain settlement engine

Provides:
- Structured logging with correlation IDs (document, COE, CTG, product)
"""

from core.observability.logging import (
    get_logger,
    configure_logging,
    configure_from_settings,
    CorrelationContext,
    get_correlation_context,
    with_correlation,
    StructuredFormatter,
    HumanReadableFormatter,
)

__all__ = [
    # Logging
    "get_logger",
    "configure_logging",
    "configure_from_settings",
    "CorrelationContext",
    "get_correlation_context",
    "with_correlation",
    "StructuredFormatter",
    "HumanReadableFormatter",
]
