"""Checksum algorithm validation.

Only MD5 is supported: it is the algorithm the data repository maintains
for every package and file.
"""

from __future__ import annotations

from membernode.errors import InvalidRequest, ServiceFailure
from membernode.models import Checksum
from membernode.repository import DataPackage

CHECKSUM_ALGORITHM = "MD5"


def validate_checksum_algorithm(algorithm: str | None, identifier: str | None = None) -> str:
    """Validate a requested checksum algorithm name.

    Empty or absent names select the default algorithm; any other name must
    match it case-insensitively.

    Returns:
        The canonical algorithm name.

    Raises:
        InvalidRequest: If the algorithm is not supported.
    """
    requested = (algorithm or "").strip() or CHECKSUM_ALGORITHM
    if requested.upper() != CHECKSUM_ALGORITHM:
        raise InvalidRequest(
            f"Unsupported or absent checksum algorithm: {requested}", identifier
        )
    return CHECKSUM_ALGORITHM


def package_checksum(package: DataPackage) -> Checksum:
    """Checksum of a data package as stored by the repository.

    Raises:
        ServiceFailure: If the repository reports no checksum for the package.
    """
    if not package.checksum:
        raise ServiceFailure("Data package has no checksum", str(package.key))
    return Checksum(value=package.checksum, algorithm=CHECKSUM_ALGORITHM)
