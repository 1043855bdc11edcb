"""
Configuration package for featurestream.

This package contains client configuration loading and defaults.

Modules:
    config_loader: Load client configuration from JSON and merge defaults
"""

__version__ = '1.0.0'
