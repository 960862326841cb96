"""
Standalone job worker process.
"""
