"""
This package contains the core domain models of bilidump.

Modules:
    exceptions.py: Custom exception types for every way an item conversion can fail.
    metadata.py: `ItemMetadata`, the parsed sidecar descriptor of a cached item,
                 and the loader that reads it.
    temp_models.py: `ConvertInfo`, the persisted progress record of one item,
                    which makes interrupted runs detectable.
"""
