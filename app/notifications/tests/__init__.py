"""
Tests for notifications app.

- test_models.py: Notification model tests
- test_services.py: NotificationService and RealtimeGateway tests
"""
