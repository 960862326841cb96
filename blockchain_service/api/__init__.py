"""
HTTP API for job intake and chain queries.
"""
