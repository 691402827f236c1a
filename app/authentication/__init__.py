"""
Authentication application.

Provides the email-based User model referenced by every other app as
settings.AUTH_USER_MODEL.
"""
