"""Domain Models.

Value objects and dataclasses for resources, resolution results, resilience
state and core settings.
"""
