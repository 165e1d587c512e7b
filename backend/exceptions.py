"""
Errors raised by the record store.

ValidationError and NotFoundError are caller mistakes and map to 400/404.
StorageFault and PhotoIOFault are server-side failures and map to 500.
"""

from typing import Any, Dict, List, Optional


class FrontDeskError(Exception):
    """Base exception for all record store errors"""

    status_code = 500

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": False,
            "error": self.message,
            "code": self.code,
            "details": self.details
        }


class ValidationError(FrontDeskError):
    """Missing or malformed input"""

    status_code = 400

    def __init__(self, message: str, fields: Optional[List[str]] = None):
        super().__init__(message, code="VALIDATION_ERROR", details={"fields": fields or []})
        self.fields = fields or []


class NotFoundError(FrontDeskError):
    """No record with the given serial number"""

    status_code = 404

    def __init__(self, kind_label: str, serial_number: str):
        super().__init__(
            f"{kind_label} not found",
            code="NOT_FOUND",
            details={"serialNumber": serial_number}
        )
        self.serial_number = serial_number


class StorageFault(FrontDeskError):
    """A collection file could not be read or written"""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message, code="STORAGE_FAULT")
        self.path = path


class PhotoIOFault(FrontDeskError):
    """A photo file could not be written, copied, renamed or removed"""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message, code="PHOTO_IO_FAULT")
        self.path = path
