"""Geometry utilities.

- reprojection: Source CRS → WGS 84 coordinate transformation
- geo_helpers: OSGB36 point conversion, metric buffering, storage repair
"""
