"""Translation of data repository failures into protocol errors."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from uuid import UUID

from membernode.errors import IdentifierNotUnique, NotFound, ServiceFailure
from membernode.repository import DataPackage
from membernode.repository.errors import (
    DuplicateIdentifierError,
    PackageNotFoundError,
    RepositoryError,
)

logger = logging.getLogger(__name__)


@contextmanager
def repository_errors(identifier: str | None) -> Iterator[None]:
    """Re-raise repository errors as the matching protocol error.

    - PackageNotFoundError -> NotFound
    - DuplicateIdentifierError -> IdentifierNotUnique
    - any other RepositoryError -> ServiceFailure
    """
    try:
        yield
    except PackageNotFoundError as e:
        raise NotFound("Identifier Not Found", identifier) from e
    except DuplicateIdentifierError as e:
        raise IdentifierNotUnique("Identifier already exists", identifier) from e
    except RepositoryError as e:
        logger.error("Data repository failure for %s: %s", identifier, e)
        raise ServiceFailure("Data repository failure", identifier) from e


def stored_key(package: DataPackage, identifier: str | None) -> UUID:
    """Key of a package read back from the repository.

    Raises:
        ServiceFailure: If the repository returned a package without a key.
    """
    if package.key is None:
        logger.error("Data repository returned a package without key for %s", identifier)
        raise ServiceFailure("Data package has no key", identifier)
    return package.key
