"""Caller identity extraction.

TLS is terminated in front of the adapter; the terminator forwards the
distinguished name of the client certificate in the X-Client-Subject header.
Requests without the header are anonymous and run as the ``public`` subject.
"""

import logging
from typing import Annotated

from fastapi import Depends, Request

from membernode.models import PUBLIC_SUBJECT, Session

logger = logging.getLogger(__name__)

CLIENT_SUBJECT_HEADER = "X-Client-Subject"


async def require_session(request: Request) -> Session:
    """FastAPI dependency returning the caller's session.

    The session is also stored on request.state.session.
    """
    subject = request.headers.get(CLIENT_SUBJECT_HEADER, "").strip() or PUBLIC_SUBJECT
    session = Session(subject=subject)
    request.state.session = session
    return session


RequireSession = Annotated[Session, Depends(require_session)]
