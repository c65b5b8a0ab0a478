"""HTTP API for the blob storage server."""

from bss.api.server import create_app

__all__ = ["create_app"]
