"""Shared utilities and cross-domain components.

This module contains utilities used across multiple domains:
- Exception classes for consistent error handling
- Permission system for role-based access control
"""
