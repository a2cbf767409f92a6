"""
Utilities Package for bilidump.

This package contains helper modules that provide common, reusable functionality
across the application. These utilities are not specific to any single step of the
dump pipeline.

Modules:
    - ffmpeg_utils.py: Runs external commands (FFmpeg) with logging and a timeout.
    - format_utils.py: Formats timestamps and sizes, and matches file extensions.
    - module_updater.py: Locates and verifies the FFmpeg executable.
"""
