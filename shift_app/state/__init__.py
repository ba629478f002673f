"""Shift state record and its atomic accessor."""
