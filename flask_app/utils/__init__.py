"""
Shared application utilities
"""
