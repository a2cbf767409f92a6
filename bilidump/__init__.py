"""
bilidump: turns the Bilibili desktop client's offline cache into playable MP4 files.

Layout:
    config/    static settings and the optional `config.user.yaml` overrides
    domain/    the sidecar metadata model, the progress record and the exceptions
    services/  one module per conversion step (locate, decode, plan, merge, log)
    pipeline/  the per-item orchestrator and the cache-root walker
    utils/     command runner, FFmpeg discovery and formatting helpers
"""

__version__ = "0.3.0"
