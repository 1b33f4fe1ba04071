"""
Account authentication module.

Provides:
  • Password hashing (bcrypt)
  • JWT access / refresh token issuance and verification
  • One-time codes for email confirmation and password reset
  • ``AuthService``, the registration / sign-in / session flows
  • Auth API routes and the ``get_current_user`` FastAPI dependency
"""
