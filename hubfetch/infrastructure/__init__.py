"""
Infrastructure layer for HubFetch: logging, error taxonomy, retries,
HTTP transport and the in-process result cache.
"""
