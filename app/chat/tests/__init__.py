"""
Tests for chat app.

- test_services.py: ChatService tests
"""
