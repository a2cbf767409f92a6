"""
Configuration Package for bilidump.

This package centralizes all the static configuration settings for the application.
By separating configuration from the application logic, it becomes easier to manage
and modify parameters without changing the core code.

This package includes settings for:
- The layout of the client's offline cache (segment extension, header size, sidecar name).
- The layout of the output tree and the bookkeeping files written into it.
- User-overridable paths for the cache, the output folder and FFmpeg.
"""
