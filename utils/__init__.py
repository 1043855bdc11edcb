"""
Utility modules for featurestream.

This package contains utility functions and helpers used throughout the library.

Modules:
    logger: Logging configuration and setup
    geometry_converters: Shapely and GeoJSON interop
"""

__version__ = '1.0.0'
