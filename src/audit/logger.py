"""
Structured Logging

DESIGN DECISION: Every storage recovery, sync failure and ledger append is
logged as a structured event. This provides:
1. Traceability of what the local store recovered and why
2. Debugging capability for sync problems that are only surfaced as warnings
3. A local trail of ledger appends, including the ones the remote rejected

structlog is configured once, on import of this module. Every other module
obtains its logger through get_logger().
"""

import structlog


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def get_logger(name: str, **initial_values) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger bound to a component name.

    Extra keyword arguments are bound into every event the logger emits
    (e.g. user_id for a per-user coordinator).
    """
    return structlog.get_logger(name, **initial_values)
