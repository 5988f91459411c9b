"""
Core modules for the cost catalog.

This package contains price resolution, cost parsing, the error taxonomy
and the service contract used by request layers.
"""
