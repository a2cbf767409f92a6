"""
This package contains the dump pipelines of bilidump.

`ItemPipeline` converts a single cached item and owns its failure policy;
`LibraryPipeline` walks the cache root, runs the pre-flight checks and feeds
the items to `ItemPipeline` one at a time.
"""
