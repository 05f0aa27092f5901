# Middleware package init
"""
Income Records Backend: Middleware Package
=============================================

What:  Cross-cutting concerns applied to every request.

Middleware Chain (request direction):
    Request → [CORS] → [Security Headers] → [Rate Limit] → [Request ID] →
              [Logging] → [Body Size] → [GZip] → Route Handler

    1. CORS: preflight answers and Access-Control headers on every response,
       including the 429 and 413 produced further in
    2. Security Headers: helmet-style response headers
    3. Rate Limit: rejects abusive clients before any processing
    4. Request ID: correlation ID for logs and error bodies
    5. Logging: method, path, status and duration with the request ID
    6. Body Size: rejects oversized bodies with 413
    7. GZip: compresses larger responses
"""
