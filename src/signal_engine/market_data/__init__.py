"""Market data collaborator contract."""

from .provider import MarketDataProvider

__all__ = ["MarketDataProvider"]
