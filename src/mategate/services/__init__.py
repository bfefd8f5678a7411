"""Domain handlers: roundtrip transactions, code execution, and record facades."""

from mategate.services.result import ServiceError, ServiceResult

__all__ = ["ServiceError", "ServiceResult"]
