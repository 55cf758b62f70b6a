"""
Divergent Flow backend package.

Design intent:
- Capture short text notes fast, classify them later, review them in bulk.
- Keep every state change behind the validated dispatch pipeline.
"""
