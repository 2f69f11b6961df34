"""Errors raised at the request boundary.

Core rules code (calc, slots, spellbook, spells_repo) never raises these for
well-formed input; they are raised by auth, persistence and request parsing
and turned into HTTP responses by app.py.
"""

from __future__ import annotations


class GrimoireError(Exception):
    status_code = 500
    public_message = "Internal server error"


class AuthenticationMissing(GrimoireError):
    status_code = 401
    public_message = "Unauthorized"


class NotFoundOrForbidden(GrimoireError):
    # "non esiste" e "non è tuo" sono lo stesso errore verso l'esterno
    status_code = 404
    public_message = "Character not found"


class InvalidRequest(GrimoireError):
    status_code = 400
    public_message = "Invalid request"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.public_message)
        if message:
            self.public_message = message


class StorageFailure(GrimoireError):
    status_code = 500
    public_message = "Storage error, please try again"


class ConfigurationError(GrimoireError):
    status_code = 500
    public_message = "Internal server error"


class CatalogError(Exception):
    """Reference data could not be loaded."""


class ReferenceNotFound(GrimoireError):
    status_code = 404
    public_message = "Not found"
