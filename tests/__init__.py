"""
Test Suite
==========

Test suite matching the src/ directory structure.

Test Categories:
- unit: Unit tests for individual components
- integration: Whole still jobs run against fake collaborators
"""
