from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import datetime, timezone
from enum import Enum
import ipaddress


class ServerProvider(str, Enum):
    AWS = "aws"
    DIGITALOCEAN = "digitalocean"
    VULTR = "vultr"
    OTHER = "other"


class ServerStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    MAINTENANCE = "maintenance"


SORTABLE_FIELDS = (
    "id", "name", "ip_address", "provider", "status",
    "cpu_cores", "ram_mb", "storage_gb", "created_at", "updated_at",
)

# Field that carries the optimistic-lock token in requests and error payloads
VERSION_FIELD = "updated_at"

# Message shown for any invalid value of a field
FIELD_MESSAGES = {
    "name": "Server name must be between 1 and 255 characters.",
    "ip_address": "Please enter a valid IPv4 address (e.g., 192.168.1.100 or 10.0.0.1).",
    "provider": "Please select a valid provider (AWS, DigitalOcean, Vultr, or Other).",
    "status": "Please select a valid status (Active, Inactive, or Maintenance).",
    "cpu_cores": "CPU cores must be between 1 and 128.",
    "ram_mb": "RAM must be between 512MB and 1,048,576MB (1TB).",
    "storage_gb": "Storage must be between 10GB and 1,048,576GB (1TB).",
    "updated_at": "The updated at field must be a valid date.",
    "ids": "Please select at least one server.",
}

# Message shown when a field is absent
REQUIRED_MESSAGES = {
    "name": "Server name is required.",
    "provider": "Please select a cloud provider.",
    "status": "Please select a server status.",
}


def normalize_version(value: Optional[datetime]) -> Optional[datetime]:
    """Version tokens are stored as naive UTC; aware input is converted."""
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class ServerBase(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=255, description="Server name, unique per provider")
    ip_address: str = Field(..., description="IPv4 address, unique across all servers")
    provider: ServerProvider = Field(..., description="Cloud provider")
    status: ServerStatus = Field(..., description="Server status")
    cpu_cores: int = Field(..., ge=1, le=128, description="CPU cores")
    ram_mb: int = Field(..., ge=512, le=1048576, description="RAM in MB")
    storage_gb: int = Field(..., ge=10, le=1048576, description="Storage in GB")

    @field_validator('ip_address')
    @classmethod
    def validate_ip_address(cls, v):
        try:
            return str(ipaddress.IPv4Address(v))
        except ValueError:
            raise ValueError('Ip address is not a valid IPv4 address')


class ServerCreate(ServerBase):
    # accepted for symmetry with the edit form, never used on create
    updated_at: Optional[datetime] = Field(None, description="Ignored on create")


class ServerUpdate(ServerBase):
    updated_at: datetime = Field(..., description="Version token read with the record")

    @field_validator('updated_at')
    @classmethod
    def validate_updated_at(cls, v):
        return normalize_version(v)


class ServerResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    ip_address: str
    provider: ServerProvider
    status: ServerStatus
    cpu_cores: int
    ram_mb: int
    storage_gb: int
    created_at: datetime
    updated_at: datetime


class ServerListResponse(BaseModel):
    servers: List[ServerResponse]
    total: int


class ServerSearchParams(BaseModel):
    status: Optional[ServerStatus] = None
    provider: Optional[ServerProvider] = None
    search: Optional[str] = Field(None, max_length=255)
    sort: str = "created_at"
    direction: str = "desc"

    @field_validator('sort')
    @classmethod
    def validate_sort(cls, v):
        if v not in SORTABLE_FIELDS:
            raise ValueError(f"Sort must be one of: {', '.join(SORTABLE_FIELDS)}")
        return v

    @field_validator('direction')
    @classmethod
    def validate_direction(cls, v):
        v = v.lower()
        if v not in ("asc", "desc"):
            raise ValueError("Direction must be 'asc' or 'desc'")
        return v


class BulkDeleteRequest(BaseModel):
    ids: List[int] = Field(..., min_length=1, description="Ids of servers to delete")


class BulkStatusUpdateRequest(BaseModel):
    ids: List[int] = Field(..., min_length=1, description="Ids of servers to update")
    status: ServerStatus = Field(..., description="New status for every listed server")


class BulkActionResponse(BaseModel):
    affected: int
    message: str


class AvailabilityResponse(BaseModel):
    field: str
    value: str
    available: bool
    message: str
