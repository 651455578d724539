"""Core application components.

This module provides the foundational components for the orgguard API:
- Application settings and configuration
- Store backend selection (Prisma or in-memory)
"""
