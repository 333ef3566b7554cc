"""
Proxy service: shared SOP storage over REST.
"""

from .routes import create_sop_router
from .server import ProxyServer, create_app

__all__ = ["ProxyServer", "create_app", "create_sop_router"]
