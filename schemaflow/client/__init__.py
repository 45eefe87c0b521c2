"""Backend access for the canvas layer.

Example:
    >>> from schemaflow.client import BackendClient, BackendConfig
    >>> async with BackendClient(BackendConfig(url="http://localhost:3000")) as client:
    ...     payload = await client.fetch_schema()
"""

from .backend import BackendClient, BackendReply
from .config import BackendConfig

__all__ = [
    "BackendClient",
    "BackendConfig",
    "BackendReply",
]
