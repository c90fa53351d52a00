# ================================
# BACKOFFICE PACKAGE (__init__.py)
# ================================

"""
Backoffice Admin Console

Session handling, CSRF protection, rate limiting and role-based
authorization for the admin console.
"""

__version__ = "1.0.0"
