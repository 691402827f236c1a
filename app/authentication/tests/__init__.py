"""
Tests for authentication app.

Provides UserFactory for the other apps' tests.
"""
