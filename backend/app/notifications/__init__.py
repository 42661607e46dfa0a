"""
notifications — Immediate and scheduled multi-channel notification delivery.

Sub-modules:
    channels/   — Per-channel senders (Slack webhook, SMTP email, SMS gateway)
    registry    — Immutable channel → sender lookup
    delivery    — Guarded single send, immediate delivery path
    scheduler   — Pending set, timing loop, dispatch pool, delivery history
    models      — Data structures shared across the system
"""
