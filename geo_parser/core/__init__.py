"""Core utilities and shared infrastructure.

- config: Configuration loading and validation
- constants: Limits, file extensions and error codes
- exceptions: Extraction error taxonomy
- workspace: Per-request scratch directory and background cleanup
"""
