"""
KPT Sync - client-side synchronization core for the KPT retrospective service.

Keeps a dashboard statistics snapshot and a paginated notification list fresh
through bounded-lifetime polling, with optimistic notification mutations.
"""
__version__ = "1.0.0"
