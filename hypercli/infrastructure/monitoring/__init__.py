"""Logging setup and diagnostic event sinks.
Bounded Context: Monitoring
"""
