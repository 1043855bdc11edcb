"""
Core modules for featurestream.

This package contains the FeatureServer client: transport, wire protocol,
typed records, predicate compilation, paginated download and edits.

Modules:
    exceptions: Error hierarchy
    transport: Retrying HTTP transport (requests and httpx)
    rest_api: Wire types, request builders and REST calls
    token: Token generation and renewal
    domain: Coded-value domains
    feature: Typed record model with change tracking
    mapper: Wire graphic to record conversion and back
    predicate: Expression tree to WHERE clause compiler
    layer: Layer and FeatureLayer download engine
    editor: Edit submission and results
    output_generator: Delimited text, KML and GeoDataFrame export
"""

__version__ = '1.0.0'
