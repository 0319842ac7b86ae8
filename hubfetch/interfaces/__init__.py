"""
Public interfaces of HubFetch.
"""
