# core/errors.py
from typing import Optional


class ChatError(Exception):
    """Base class for errors the HTTP layer knows how to render."""
    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFound(ChatError):
    status_code = 404

    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} not found: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id


class RequestValidationFailed(ChatError):
    status_code = 422

    def __init__(self, detail: str, errors: Optional[list] = None):
        super().__init__(detail)
        self.errors = errors or []


class ProviderError(ChatError):
    status_code = 502


class PersistenceError(ChatError):
    status_code = 500
