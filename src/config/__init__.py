"""
Configuration Management
=======================

Environment-based configuration using Pydantic Settings.

Components:
- settings: Render defaults, paths and environment configuration
- logging: Structured logging configuration
"""
