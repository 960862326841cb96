"""
Pydantic schemas for payloads, API bodies and published events.
"""
