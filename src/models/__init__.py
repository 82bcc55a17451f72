"""
Data Models
===========

Pydantic data models for job configuration, progress state and job results.

Models:
- schemas: job configuration, progress snapshots, decisions and results
"""
