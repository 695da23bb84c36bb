# app/models/__init__.py
"""
Database models module initialization.
Exports all database models for convenient imports throughout the application.

Models exported:
- Role: Role with permission matrix and hierarchy level
- User: User account, credential and lockout state
- Token: Refresh-token session record
- OAuthLink: Linked external OAuth provider account
"""
from .role import Role
from .user import User
from .token import Token
from .oauth_link import OAuthLink
