"""Access to the adapter bound to the running application."""

from fastapi import Request

from membernode.adapter import MemberNodeAdapter


def get_adapter(request: Request) -> MemberNodeAdapter:
    """Return the adapter stored on app.state by create_app."""
    adapter: MemberNodeAdapter = request.app.state.adapter
    return adapter
