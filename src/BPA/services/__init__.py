"""
Core services for the assistant.

Modules:
    record_store: REST client for the realtime database holding benefit records
    cache: TTL snapshot cache of the benefit collection
"""
