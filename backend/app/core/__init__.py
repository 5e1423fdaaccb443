"""
Core package — cross-cutting concerns.

Modules:
    config          — environment variables & settings
    logging_config  — structured JSON / pretty logging, request context
    redaction       — sensitive-field redaction, per-operation log records
    errors          — exception hierarchy & handlers
    error_tracking  — Sentry initialisation and scrubbed reporting
    middleware      — request ids, timing, request logging
    rate_limit      — per-client fixed window limiter
    health          — health check aggregation
"""
