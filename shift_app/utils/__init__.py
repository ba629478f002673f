"""
Utility functions module.

Time Semantics:
- All durable timestamps are timezone-aware UTC and serialized as ISO8601
- Callers pass ``now`` explicitly wherever a decision depends on the clock,
  so a single invocation evaluates every rule against one instant
- Naive datetimes are interpreted as UTC on parse
"""
