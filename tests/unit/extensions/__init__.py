"""
Unit tests for the extensions package.
"""
