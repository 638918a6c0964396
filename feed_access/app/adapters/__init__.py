"""
Adapters package for the feed access layer.

Contains the client for the remote content service. Adapters encapsulate:

- Base URLs and request shapes
- Mapping of transport and status errors to shared errors

Adapters never retry and hold no cache state.
"""

from .content_client import ContentServiceClient
from .content_service import ContentService

__all__ = [
    "ContentService",
    "ContentServiceClient",
]
