"""
Bundled seed catalog.
"""
