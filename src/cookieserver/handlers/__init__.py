"""
Request handlers.

StaticResolver maps request paths to files under the document root;
RequestDispatcher applies the GET/POST session rules and writes responses.
"""

from .static import StaticResolver
from .dispatch import RequestDispatcher

__all__ = [
    "StaticResolver",
    "RequestDispatcher",
]
