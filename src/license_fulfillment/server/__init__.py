"""FastAPI webhook adapter for license-fulfillment.

Design intent:
- Keep workflow logic in `license_fulfillment.engine` and `license_fulfillment.purchase`
- Keep server-specific concerns (routing, status codes) here
"""

from __future__ import annotations

__all__ = ["create_app"]

from license_fulfillment.server.app import create_app
