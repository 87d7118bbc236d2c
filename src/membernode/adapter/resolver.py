"""Identifier resolution with visibility filtering.

Every operation that targets an existing object goes through
``IdentifierResolver.resolve``: an identifier is first tried as a package key
(UUID), then looked up in the repository's alternative-identifier index.
Packages that are not visible in this node's scope are indistinguishable
from packages that do not exist.
"""

from __future__ import annotations

import logging
from uuid import UUID

from membernode.adapter.translate import repository_errors
from membernode.errors import NotFound
from membernode.repository import DataPackage, DataRepository

logger = logging.getLogger(__name__)


def parse_key(identifier: str) -> UUID | None:
    """Parse an identifier as a canonical package key, or None."""
    try:
        return UUID(identifier.strip())
    except ValueError:
        logger.debug("Identifier is not a UUID: %s", identifier)
        return None


def is_visible(package: DataPackage, scope_name: str) -> bool:
    """A package is visible iff it is published in or shared into the scope."""
    scopes = set(package.shared_in)
    if package.published_in:
        scopes.add(package.published_in)
    return scope_name in scopes


class IdentifierResolver:
    """Maps external identifiers to visible data packages."""

    def __init__(self, repository: DataRepository, scope_name: str) -> None:
        self._repository = repository
        self._scope_name = scope_name

    @property
    def scope_name(self) -> str:
        return self._scope_name

    def _lookup(self, identifier: str) -> DataPackage | None:
        with repository_errors(identifier):
            package = None
            key = parse_key(identifier)
            if key is not None:
                package = self._repository.get(key)
            if package is None:
                package = self._repository.get_by_alternative_identifier(identifier)
        if package is None or not is_visible(package, self._scope_name):
            return None
        return package

    def resolve(self, identifier: str) -> DataPackage:
        """Resolve an identifier to a visible data package.

        Raises:
            NotFound: If the identifier is unknown or not visible in this scope.
        """
        package = self._lookup(identifier)
        if package is None:
            raise NotFound("Identifier Not Found", identifier)
        return package

    def exists(self, identifier: str) -> bool:
        """Check whether an identifier already resolves to a visible package."""
        return self._lookup(identifier) is not None
