"""
Configuration and serialization.
"""
