"""
Services Package for bilidump.

This package contains the "service layer" of the application: one module per step
of an item conversion. The pipelines decide the order and the failure policy;
the services only do their one step and raise a domain exception when it fails.

- **Segment Locator (`find_segments`):** lists the cached `.m4s` segments of an item.
- **Segment Decoder (`decode_segment`):** strips the client header from one segment.
- **Output Planner (`OutputPlanner`, `sanitize_name`):** names the destination
  directory and file, and refuses two items sharing a directory.
- **Merger (`merge_fragments`, `verify_output`):** runs FFmpeg to copy the
  decoded fragments into one MP4.
- **Logging Service (`SuccessLog`, `ErrorLog`):** writes the persistent YAML and
  text run logs into the target root.
"""
