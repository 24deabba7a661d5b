"""Geospatial upload extraction.

Turns an uploaded KML document or zipped shapefile into a validated
WGS 84 GeoJSON FeatureCollection.  Decoding runs in an isolated child
process under a hard deadline, and every hostile-input path (zip bombs,
entity expansion, oversized uploads) fails with a typed error.
"""

__version__ = "0.1.0"
