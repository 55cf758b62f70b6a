"""
HTTP boundary for the Divergent Flow backend.

Design intent:
- Keep routers thin: build a command/query, send it, map the result.
- Translate validation failures and absent results into status codes.
"""
