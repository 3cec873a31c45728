"""
Domain exceptions.

Raised by services and collaborators; the FastAPI app maps each class to an
HTTP status and a structured ErrorResponse (see readmate.main).
"""

from __future__ import annotations


class ReadMateError(Exception):
    """Base class for all domain errors."""

    error_code: str = "INTERNAL_ERROR"


class NotFoundError(ReadMateError):
    error_code = "NOT_FOUND"

    def __init__(self, resource: str, resource_id: int | str) -> None:
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} {resource_id} not found")


class EmptyResultError(ReadMateError):
    """Nothing to work with: no chunks, or no chunk analyses to reduce."""

    error_code = "EMPTY_RESULT"


class InvalidStateError(ReadMateError):
    """The document's status does not allow the requested transition."""

    error_code = "INVALID_STATE"


class DocumentBusyError(ReadMateError):
    error_code = "DOCUMENT_BUSY"

    def __init__(self, document_id: int) -> None:
        self.document_id = document_id
        super().__init__(f"Document {document_id} is already being processed")


class UnsupportedFileTypeError(ReadMateError):
    error_code = "UNSUPPORTED_FILE_TYPE"

    def __init__(self, file_type: str) -> None:
        self.file_type = file_type
        super().__init__(f"Unsupported file type: {file_type}")


class ProviderError(ReadMateError):
    """The text-intelligence provider failed a call that must not degrade."""

    error_code = "PROVIDER_ERROR"


class StorageError(ReadMateError):
    error_code = "STORAGE_ERROR"
