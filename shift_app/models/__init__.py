"""
Data models and contracts module.

Immutable documents exchanged between shifts, such as the handoff summary.
"""
