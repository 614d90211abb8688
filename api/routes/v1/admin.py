"""
api/routes/v1/admin.py -- Registration management endpoints for site admins.

Routes:
  GET  /api/v1/admin/users?page=N     -- newest-first listing, PAGE_SIZE per page
  POST /api/v1/admin/users/delete     -- bulk delete by id
  GET  /api/v1/admin/schema           -- does the accounts table exist?
  POST /api/v1/admin/schema           -- create / repair the accounts table

All routes require X-API-Key == ADMIN_API_KEY. The check is attached once,
for the whole router, where api/main.py includes it (auth.dependencies.require_admin).
With ADMIN_API_KEY unset every call is 403.

The listing is offset-paginated and not isolated from concurrent writes. A
registration landing between two page fetches shifts later pages by one
row; acceptable for an admin view.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Query, Request

from accounts.store import AccountStore
from api.models import BulkDeleteRequest, BulkDeleteResponse, ProfileResponse, SchemaResponse, UserListResponse

logger = logging.getLogger("doregister.api")

router = APIRouter()


@router.get("/admin/users", response_model=UserListResponse)
def list_users(request: Request, page: int = Query(default=1, ge=1)) -> UserListResponse:
    """Return one page of registrations, newest first."""
    store: AccountStore = request.app.state.store
    result = store.page(page, request.app.state.settings.page_size)
    return UserListResponse(
        users=[ProfileResponse.from_record(r) for r in result.records],
        page=result.page,
        per_page=result.per_page,
        total=result.total,
        total_pages=result.total_pages,
    )


@router.post("/admin/users/delete", response_model=BulkDeleteResponse)
def bulk_delete(request: Request, body: BulkDeleteRequest) -> BulkDeleteResponse:
    """Delete the given registrations. Invalid ids are ignored, not errors."""
    store: AccountStore = request.app.state.store
    deleted = store.delete_by_ids(body.ids)
    return BulkDeleteResponse(deleted=deleted, message=f"{deleted} record(s) deleted.")


@router.get("/admin/schema", response_model=SchemaResponse)
def schema_status(request: Request) -> SchemaResponse:
    store: AccountStore = request.app.state.store
    return SchemaResponse(table_exists=store.table_exists())


@router.post("/admin/schema", response_model=SchemaResponse)
def create_schema(request: Request) -> SchemaResponse:
    """Create the accounts table if it is missing. Safe to call repeatedly."""
    store: AccountStore = request.app.state.store
    store.ensure_schema()
    logger.info("Schema ensured by admin request")
    return SchemaResponse(table_exists=store.table_exists())
