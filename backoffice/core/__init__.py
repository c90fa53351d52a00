# ================================
# CORE PACKAGE INITIALIZATION (core/__init__.py)
# ================================

"""
Core Package

Database, security primitives, exceptions and middleware
"""
