"""
Connector adapters package.

This package provides the following components:

- column_info: Column and parameter metadata, from catalogs and cursor descriptions
- type_mapping: Native type descriptors, type handlers, value encoding and decoding

Type mapping principles:
1. Native → protocol: a resolved handler encodes each fetched value to JSON
2. Protocol → native: decoders are keyed by abstract type for write-back binds

Handlers are table driven per dialect, so a new native type needs only a
new handler registration.
"""
