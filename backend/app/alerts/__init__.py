"""
alerts — SOS alert delivery.

Sub-modules:
    channels/   — Per-channel delivery backends (email API, SMTP, SMS, push)
    dispatcher  — Priority-ordered delivery with fallback and timeouts
    validator   — Request validation into an immutable AlertRequest
    composer    — Location-aware message rendering
    models      — Data structures shared across the system
"""
