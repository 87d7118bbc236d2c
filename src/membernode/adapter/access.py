"""Authorization decisions.

READ is always allowed. WRITE and CHANGE_PERMISSION are allowed only to the
subject that created the data package. Access policies embedded in system
metadata are informational and are not consulted.
"""

from __future__ import annotations

import logging

from membernode.errors import NotAuthorized
from membernode.models import Permission, Session
from membernode.repository import DataPackage

logger = logging.getLogger(__name__)


class AccessController:
    """Binary read/write authorization against the package creator."""

    def is_authorized(self, session: Session, package: DataPackage, permission: Permission) -> bool:
        if permission is Permission.READ:
            return True
        if permission in (Permission.WRITE, Permission.CHANGE_PERMISSION):
            return package.created_by is not None and package.created_by == session.subject
        return False

    def assert_authorized(
        self,
        session: Session,
        package: DataPackage,
        permission: Permission = Permission.WRITE,
        identifier: str | None = None,
    ) -> None:
        """Raise NotAuthorized unless the session holds the permission."""
        if not self.is_authorized(session, package, permission):
            logger.info(
                "Denied %s on %s for subject %s",
                permission.value,
                identifier or package.key,
                session.subject,
            )
            raise NotAuthorized("Subject is not authorized to perform this action", identifier)
