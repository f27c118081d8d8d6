"""License Fulfillment.

Turns a purchase event into a license and an email:
- a small workflow engine (tasks, parallel branches, retries, path selectors)
- the purchase workflow wired to Keygen, Paddle and SMTP
- a CLI and a FastAPI webhook server as trigger surfaces
"""

__version__ = "0.1.0"

from license_fulfillment.config import FulfillmentSettings

__all__ = ["__version__", "FulfillmentSettings"]
