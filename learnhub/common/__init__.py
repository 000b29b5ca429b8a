"""
Common Utilities

Shared infrastructure for the assessment core: configuration-independent
logging, the error taxonomy, serialization helpers and the cache backends.
"""
