# app/core/__init__.py
"""
Core application modules.
Contains essential infrastructure components:
- authorization: AuthContext and route-level authorization predicates
- bootstrap: Canonical roles and default superadmin creation
- db: Database configuration and connection management
- errors: AppError and its HTTP translation
- lockout: Account lockout policy
- permissions: Resource/action permission model
- rate_limit: Request rate limiting
- security: Password hashing and JWT handling
"""
