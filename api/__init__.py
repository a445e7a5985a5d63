"""
FastAPI RESTful API for the Bookworm book catalog.

This module provides:
- Registration, login, token refresh and logout over HttpOnly cookies
- Admin-gated genre management
- Book creation with cover and PDF uploads
- Public genre and book browsing
"""
