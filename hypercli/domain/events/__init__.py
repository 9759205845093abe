"""Domain Event definitions.

Diagnostic events published by the retry executor and the response cache
to a pluggable observer.
"""
