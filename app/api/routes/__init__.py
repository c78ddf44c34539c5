from . import accounts, status

__all__ = ["accounts", "status"]
