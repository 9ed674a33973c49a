"""
Adapters package for the content proxy.

Wraps the remote file store API. Adapters attach credentials, bound every
call by a timeout and map failures to ``TransportError``; they never
retry and never cache.
"""

from .remote_store_client import DriveEndpoints, RemoteStoreClient

__all__ = [
    "DriveEndpoints",
    "RemoteStoreClient",
]
