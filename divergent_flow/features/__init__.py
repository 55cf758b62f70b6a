"""
Commands, queries, validators and handlers per feature area.

Design intent:
- One module per feature (captures, items, collections, type inference).
- Handlers own id/timestamp assignment; stores only persist.
"""
