from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import ValidationError
from sqlalchemy.orm import Session
from typing import Any, Optional
from config.config_database import get_db
from services.server_service import ServerService
from schemas.server import (
    AvailabilityResponse,
    BulkActionResponse,
    BulkDeleteRequest,
    BulkStatusUpdateRequest,
    ServerCreate,
    ServerListResponse,
    ServerProvider,
    ServerResponse,
    ServerSearchParams,
    ServerStatus,
    ServerUpdate,
)
from utils.exceptions import (
    FieldValidationError,
    ServerNotFound,
    ServerWriteError,
    StaleVersionConflict,
    UniquenessConflict,
)

router = APIRouter(prefix="/api/servers", tags=["Servers"])

ERROR_STATUS_CODES = (
    (FieldValidationError, 422),
    (UniquenessConflict, 409),
    (StaleVersionConflict, 409),
    (ServerNotFound, 404),
)


def get_server_service(db: Session = Depends(get_db)) -> ServerService:
    return ServerService(db)


def error_detail(message: str, errors: dict, submitted: Any = None) -> dict:
    return {"message": message, "errors": errors, "input": submitted}


def raise_write_error(error: ServerWriteError, submitted: Any = None):
    """Turn a recoverable write rejection into a field-keyed HTTP error that echoes the input."""
    status_code = 422
    for error_type, code in ERROR_STATUS_CODES:
        if isinstance(error, error_type):
            status_code = code
            break
    raise HTTPException(
        status_code=status_code,
        detail=error_detail(error.message, error.errors, submitted)
    )


@router.get("/", response_model=ServerListResponse)
def get_servers(
    status: Optional[ServerStatus] = Query(None, description="Filter by status"),
    provider: Optional[ServerProvider] = Query(None, description="Filter by provider"),
    search: Optional[str] = Query(None, max_length=255, description="Substring of name or IP"),
    sort: str = Query("created_at", description="Sort column"),
    direction: str = Query("desc", description="asc or desc"),
    server_service: ServerService = Depends(get_server_service)
):
    try:
        search_params = ServerSearchParams(
            status=status,
            provider=provider,
            search=search,
            sort=sort,
            direction=direction
        )
    except ValidationError as e:
        raise_write_error(FieldValidationError.from_error_list(e.errors()))
    return server_service.search_servers(search_params)


@router.delete("/bulk-destroy", response_model=BulkActionResponse)
def bulk_delete_servers(
    request: BulkDeleteRequest,
    server_service: ServerService = Depends(get_server_service)
):
    deleted = server_service.bulk_delete(request.ids)
    return BulkActionResponse(affected=deleted, message=f"{deleted} servers deleted successfully.")


@router.patch("/bulk-update-status", response_model=BulkActionResponse)
def bulk_update_server_status(
    request: BulkStatusUpdateRequest,
    server_service: ServerService = Depends(get_server_service)
):
    try:
        updated = server_service.bulk_update_status(request.ids, request.status)
    except ServerWriteError as e:
        raise_write_error(e, request.model_dump(mode="json"))
    return BulkActionResponse(affected=updated, message=f"{updated} servers updated successfully.")


@router.get("/validate/ip/{ip_address}", response_model=AvailabilityResponse)
def validate_ip_address(
    ip_address: str,
    server_id: Optional[int] = Query(None, description="Server id to exclude (when editing)"),
    server_service: ServerService = Depends(get_server_service)
):
    """Advisory check whether an IP address is still free"""
    available = server_service.check_ip_available(ip_address, exclude_id=server_id)
    return AvailabilityResponse(
        field="ip_address",
        value=ip_address,
        available=available,
        message="IP address is available" if available else "This IP address is already assigned to another server."
    )


@router.get("/validate/name", response_model=AvailabilityResponse)
def validate_name(
    name: str = Query(..., max_length=255, description="Server name"),
    provider: ServerProvider = Query(..., description="Provider the name is scoped to"),
    server_id: Optional[int] = Query(None, description="Server id to exclude (when editing)"),
    server_service: ServerService = Depends(get_server_service)
):
    """Advisory check whether a name is still free for the provider"""
    available = server_service.check_name_available(name, provider.value, exclude_id=server_id)
    return AvailabilityResponse(
        field="name",
        value=name,
        available=available,
        message="Name is available" if available else "The name has already been taken for this provider."
    )


@router.get("/{server_id}", response_model=ServerResponse)
def get_server_by_id(
    server_id: int,
    server_service: ServerService = Depends(get_server_service)
):
    server = server_service.get_server_by_id(server_id)
    if not server:
        raise_write_error(ServerNotFound(server_id))
    return server


@router.post("/", response_model=ServerResponse, status_code=201)
def create_server(
    server_data: ServerCreate,
    server_service: ServerService = Depends(get_server_service)
):
    try:
        return server_service.create_server(server_data)
    except ServerWriteError as e:
        raise_write_error(e, server_data.model_dump(mode="json"))


@router.put("/{server_id}", response_model=ServerResponse)
def update_server(
    server_id: int,
    server_data: ServerUpdate,
    server_service: ServerService = Depends(get_server_service)
):
    """
    Replace a server's fields.

    ``updated_at`` must be the value read with the record; if anyone has
    saved the server since, the request is rejected with 409 and nothing
    is written.
    """
    try:
        return server_service.update_server(server_id, server_data)
    except ServerWriteError as e:
        raise_write_error(e, server_data.model_dump(mode="json"))


@router.delete("/{server_id}")
def delete_server(
    server_id: int,
    server_service: ServerService = Depends(get_server_service)
):
    success = server_service.delete_server(server_id)
    if not success:
        raise_write_error(ServerNotFound(server_id))
    return {"message": "Server deleted successfully."}
