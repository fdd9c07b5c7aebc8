"""
HTTP surface of SupplyProv.

- create_app / serve: FastAPI application over a SupplyProvRuntime
- RecordServiceClient: requests-based client for the same API
"""

from .app import create_app, serve
from .client import RecordServiceClient, decode_error

__all__ = ["create_app", "serve", "RecordServiceClient", "decode_error"]
