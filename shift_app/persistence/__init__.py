"""Durable, human-legible stores for plans, shift state and the context log."""
