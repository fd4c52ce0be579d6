"""
Core module - Configuration, database, security, and utilities.
"""
