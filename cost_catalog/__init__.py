"""
Cost Catalog.

Resolves the effective unit price of billable items from time-versioned
provider plans and price points.
"""

__version__ = "0.1.0"
