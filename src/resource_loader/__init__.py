"""On-demand resource index and per-session context lifecycle."""

from resource_loader.loader import ResourceLoader

__all__ = ["ResourceLoader"]
