"""Member Node protocol models.

Exports all protocol types for convenient importing.
"""

from membernode.models.protocol import (
    DescribeResponse,
    Health,
    HealthStatus,
    ObjectInfo,
    ObjectList,
    Session,
)
from membernode.models.system_metadata import (
    PUBLIC_SUBJECT,
    AccessPolicy,
    AccessRule,
    Checksum,
    Permission,
    SystemMetadata,
)

__all__ = [
    "PUBLIC_SUBJECT",
    "AccessPolicy",
    "AccessRule",
    "Checksum",
    "DescribeResponse",
    "Health",
    "HealthStatus",
    "ObjectInfo",
    "ObjectList",
    "Permission",
    "Session",
    "SystemMetadata",
]
