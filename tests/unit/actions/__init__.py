"""
Unit tests for the actions package.
"""
