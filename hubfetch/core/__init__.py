"""
Core layer of HubFetch: matching, filtering, tree walking, exploration
and download scheduling.
"""
