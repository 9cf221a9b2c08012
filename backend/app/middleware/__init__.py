# Middleware package init
"""
Inceptra Backend — Middleware Package
=======================================

Middleware Chain (outermost first):
    Request → [Request ID] → [Rate Limit] → [Access Log] → [GZip] → [CORS] → Route

    Request ID runs first so the rate-limit rejection body and every log line
    carry the correlation id. The rate limiter is per client IP and separate
    from the per-user daily quotas enforced by the quota ledger.
"""
