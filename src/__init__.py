"""
Still Render Orchestrator
=========================

Orchestrates the asynchronous stages needed to produce one rendered still
image from a browser-based project.

This package provides:
- Stage sequencing with cooperative cancellation and LIFO resource cleanup
- Aggregated progress reporting to a console and a programmatic observer
- Output format and location decisions with an overwrite policy
- Playwright-backed browser, composition and still rendering collaborators
"""

__version__ = "1.0.0"
__author__ = "Still Render Team"
