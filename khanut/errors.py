"""Exceptions raised across the Khanut backend"""
from typing import Any, Optional


class KhanutError(Exception):
    """Base exception for Khanut errors"""
    pass


class StoreError(KhanutError):
    """Transaction store read/write errors"""
    pass


class ChapaError(KhanutError):
    """Error reported by the Chapa API"""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        payload: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload or {}


class AuthError(KhanutError):
    """Rejected by the customer admission gate"""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
