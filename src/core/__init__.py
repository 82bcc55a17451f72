"""
Core Business Logic
==================

Core modules for orchestrating and rendering still images.

Modules:
- orchestration: stage sequencing, progress, cancellation, cleanup and output decisions
- rendering: browser, bundler, server, composition and still rendering collaborators
"""
