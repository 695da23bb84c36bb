"""
Services Module

Business logic behind the HTTP routers:
- token_service: refresh-token sessions (mint, refresh, revoke, sweeps)
- auth_service: registration, login, email verification, password flows
- role_service: role CRUD, permissions, hierarchy, bootstrap
- user_service: profile and admin user management
- oauth_client / oauth_service: provider login and account linking
- gate: access-token authentication
- notifications: account email delivery
- container: wiring of all of the above
"""

from .container import Services, TokenSweeper, build_services

__all__ = [
    "Services",
    "TokenSweeper",
    "build_services",
]
