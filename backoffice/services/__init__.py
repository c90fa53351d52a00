# ================================
# SERVICES PACKAGE INITIALIZATION (services/__init__.py)
# ================================

"""
Services Package

Business logic of the authorization and session-security layer
"""
