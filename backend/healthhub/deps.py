from fastapi import Depends, Request

from healthhub.security import get_current_user
from healthhub.services.realtime import RealtimeHub


def get_hub(request: Request) -> RealtimeHub:
    """The process-wide realtime services, attached to the app at creation."""
    return request.app.state.hub


# Common dependencies used across routers
CurrentUser = Depends(get_current_user)
CurrentHub = Depends(get_hub)
