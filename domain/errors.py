# domain/errors.py

from typing import Optional

UNIQUE_VIOLATION = "23505"


class StoreError(Exception):
    """
    Raised by the data access layer when a query, insert or update fails.
    `code` is the Postgres/PostgREST error code when one was returned.
    """

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code

    @property
    def is_unique_violation(self) -> bool:
        return self.code == UNIQUE_VIOLATION

    def mentions(self, text: str) -> bool:
        return text in self.message


class CatalogError(Exception):
    """Reference data (product types, stores) could not be loaded."""


class ValidationError(ValueError):
    """Input rejected before any persistence call was made."""


class EmptyCartError(ValidationError):
    pass


class DeliveryCommitError(Exception):
    """
    The delivery header for one store could not be created or updated.
    """

    def __init__(self, store_id: str, store_name: str, message: str):
        super().__init__(f"{store_name} ({store_id}): {message}")
        self.store_id = store_id
        self.store_name = store_name
        self.message = message
