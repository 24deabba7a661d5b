"""Extraction orchestration.

1. Validate request → allocate scratch workspace
2. Size check → download → parse in isolated worker
3. Validate GeoJSON → schedule workspace cleanup
"""
