"""Services built on the fetch pipeline."""

from .payload import Payload
from .site_client import SiteClient, append_params, join_cookies

__all__ = [
    "Payload",
    "SiteClient",
    "append_params",
    "join_cookies",
]
