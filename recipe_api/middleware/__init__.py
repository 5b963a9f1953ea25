# Middleware package init
"""
RecipeShare Backend: Middleware Package
========================================

Cross-cutting concerns applied to every request.

Middleware Chain (outermost first):
    Request → [Rate Limit] → [Request ID] → [Logging] → [GZip] → [CORS] → Route

    Rate limiting runs first so rejected requests cost nothing. The request
    id is assigned before the access log line is written so both carry the
    same id. Responses unwind in reverse order.
"""
