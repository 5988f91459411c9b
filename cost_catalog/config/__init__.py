"""
Settings and seed catalog loading.
"""
