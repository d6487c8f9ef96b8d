"""
Lesion Detection - Operational helpers (logging).
"""
