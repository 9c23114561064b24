"""ORM model exports for convenient imports elsewhere in the app."""

from serviceability.models.base import Base
from serviceability.models.merchant import Merchant

__all__ = [
    "Base",
    "Merchant",
]
