"""
Storage layer: versioned plan and price records in SQLite.
"""
