"""
Shared utilities for talking to remote services.

- http.py      - Async retry/backoff transport, blocking fallback session
- inflight.py  - Coalescing of concurrent identical requests
"""
