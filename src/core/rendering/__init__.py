"""
Rendering Module
===============

Default collaborators of a still job, backed by Playwright and uvicorn.

Components:
- browser: Chromium installation, launch and page contexts
- bundler: copies a project into a servable temporary directory
- server: embedded static file server for bundles
- compositions: reads and selects the project's compositions
- renderer: captures one frame as png, jpeg, webp or pdf
"""
