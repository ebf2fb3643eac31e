"""
Spatial helpers for the territory capture engine.

This package provides:

1. **metrics**: planar area and haversine lengths for rings and paths
2. **spatial_utils**: ring closing, de-duplication and sanitizing
3. **simplification**: Douglas-Peucker vertex reduction for captured rings
4. **capability**: the GeometryCapability interface used by the engine,
   with a shapely implementation and a pyproj geodesic variant

The session engine only depends on GeometryCapability; pass a different
implementation to CaptureSession to change the geometry backend.
"""

from .capability import GeodesicGeometry, GeometryCapability, ShapelyGeometry

__all__ = ["GeodesicGeometry", "GeometryCapability", "ShapelyGeometry"]
