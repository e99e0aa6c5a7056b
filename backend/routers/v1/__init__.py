"""API v1 Route modules."""

from backend.routers.v1 import calculations, commissions, plans

__all__ = ["calculations", "commissions", "plans"]
