"""
Sync core services.
"""
