"""Request-scoped dependencies shared by the repair routes."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Query, Request

from repairdesk.core.config import Settings, get_settings
from repairdesk.dependencies.auth import Role, User, role_required
from repairdesk.tickets.errors import ValidationError
from repairdesk.tickets.lookup import PageRequest
from repairdesk.tickets.service import RepairTicketService

require_staff = role_required(Role.STAFF)
require_viewer = role_required(Role.VIEWER)

StaffUser = Annotated[User, Depends(require_staff)]
ViewerUser = Annotated[User, Depends(require_viewer)]
SettingsDep = Annotated[Settings, Depends(get_settings)]


async def get_ticket_service(request: Request) -> RepairTicketService:
    service = getattr(request.app.state, "ticket_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Ticket service is not configured")
    return service


def get_page_request(
    settings: SettingsDep,
    page: int | None = Query(default=None),
    limit: int | None = Query(default=None),
) -> PageRequest:
    """Build paging from ``page``/``limit`` with the configured default and cap."""

    try:
        return PageRequest.build(
            page,
            limit,
            default_limit=settings.lookup_default_limit,
            max_limit=settings.lookup_max_limit,
        )
    except ValidationError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc


PageDep = Annotated[PageRequest, Depends(get_page_request)]
