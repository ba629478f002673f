"""
Shift App - Crash-Tolerant Cyclic Task Execution Engine

Plans a bounded window of work once per shift, decomposes it into atomic
steps, and executes a small bounded number of steps per periodic, stateless
invocation. All progress lives in durable, human-legible stores.
"""

__version__ = "0.1.0"
__author__ = "Shift App Team"
