"""HTTP surface of the proxy."""

from .errors import error_envelope, register_error_handlers

__all__ = ["error_envelope", "register_error_handlers"]
