"""
Donation tracker application package
"""
