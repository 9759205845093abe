"""API Resilience Implementations.

Contains the failure classifier, per-target circuit breakers, the retry
executor with exponential backoff, and in-flight request deduplication.
Bounded Context: API Resilience
"""
