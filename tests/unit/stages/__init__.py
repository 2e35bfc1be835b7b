"""
Unit tests for the stages package.
"""
