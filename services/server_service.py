import logging
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from dao.server_dao import ServerDAO
from models.server import Server
from schemas.server import (
    ServerCreate,
    ServerUpdate,
    ServerResponse,
    ServerListResponse,
    ServerSearchParams,
    ServerStatus,
    normalize_version,
)
from utils.exceptions import (
    FieldValidationError,
    ServerNotFound,
    StaleVersionConflict,
    UniquenessConflict,
)

logger = logging.getLogger(__name__)

SchemaT = TypeVar("SchemaT", bound=BaseModel)

# constraint name (MySQL) and column list (SQLite) -> field reported to the caller
CONSTRAINT_FIELDS = (
    (("uq_servers_name_provider", "servers.name, servers.provider"), "name"),
    (("uq_servers_ip_address", "servers.ip_address"), "ip_address"),
)


class ServerService:
    """
    Coordinates every write to the server inventory.

    Uniqueness pre-checks here are advisory: they only give a friendly error
    early. The unique constraints on the table are what keep ip_address and
    (name, provider) unique, and their violations are translated back into
    the same errors the pre-checks produce.
    """

    def __init__(self, db: Session, dao: Optional[ServerDAO] = None):
        self.db = db
        self.dao = dao or ServerDAO(db)

    # ===== QUERY METHODS =====

    def get_server_by_id(self, server_id: int) -> Optional[ServerResponse]:
        if server_id <= 0:
            return None

        server = self.dao.get_by_id(server_id)
        if server:
            return self._convert_to_response(server)
        return None

    def search_servers(self, search_params: ServerSearchParams) -> ServerListResponse:
        servers, total = self.dao.search_servers(
            status=search_params.status.value if search_params.status else None,
            provider=search_params.provider.value if search_params.provider else None,
            keyword=search_params.search,
            sort=search_params.sort,
            direction=search_params.direction
        )
        return ServerListResponse(
            servers=[self._convert_to_response(server) for server in servers],
            total=total
        )

    # ===== UNIQUENESS PRE-CHECKS =====

    def check_ip_available(self, ip_address: str, exclude_id: Optional[int] = None) -> bool:
        if not ip_address or not ip_address.strip():
            return False
        return not self.dao.check_ip_exists(ip_address.strip(), exclude_id)

    def check_name_available(self, name: str, provider: str, exclude_id: Optional[int] = None) -> bool:
        if not name or not name.strip():
            return False
        return not self.dao.check_name_exists(name.strip(), provider, exclude_id)

    # ===== WRITE METHODS =====

    def create_server(self, server_data: Union[ServerCreate, Mapping[str, Any]]) -> ServerResponse:
        server_data = self._validate(ServerCreate, server_data)
        fields = self._to_fields(server_data)

        self._precheck_uniqueness(fields)

        try:
            created_server = self.dao.create(fields)
        except IntegrityError as e:
            conflict = self._translate_integrity_error(e, fields)
            if conflict is None:
                raise
            raise conflict from e

        logger.info(f"✅ Created server {created_server.id} ({created_server.name}, {created_server.ip_address})")
        return self._convert_to_response(created_server)

    def update_server(
        self,
        server_id: int,
        server_data: Union[ServerUpdate, Mapping[str, Any]]
    ) -> ServerResponse:
        server_data = self._validate(ServerUpdate, server_data)
        submitted_version = server_data.updated_at

        self._check_version(server_id, submitted_version)

        fields = self._to_fields(server_data)
        self._precheck_uniqueness(fields, exclude_id=server_id)

        try:
            updated_server = self.dao.update_if_version_matches(server_id, submitted_version, fields)
        except IntegrityError as e:
            conflict = self._translate_integrity_error(e, fields)
            if conflict is None:
                raise
            raise conflict from e
        except StaleVersionConflict:
            logger.warning(f"Server {server_id} changed between version check and write")
            raise

        logger.info(f"✅ Updated server {server_id}, version {submitted_version} -> {updated_server.updated_at}")
        return self._convert_to_response(updated_server)

    def delete_server(self, server_id: int) -> bool:
        if server_id <= 0:
            return False

        deleted = self.dao.delete(server_id)
        if deleted:
            logger.info(f"🗑️ Deleted server {server_id}")
        return deleted

    def bulk_delete(self, server_ids: List[int]) -> int:
        deleted = self.dao.delete_many(self._unique_ids(server_ids))
        logger.info(f"🗑️ Bulk deleted {deleted} of {len(server_ids)} requested servers")
        return deleted

    def bulk_update_status(self, server_ids: List[int], status: Union[ServerStatus, str]) -> int:
        # mass transitions carry no per-record version tokens and are applied unconditionally
        try:
            status = ServerStatus(status)
        except ValueError:
            raise FieldValidationError.from_error_list([{"loc": ("status",), "type": "enum"}])

        updated = self.dao.update_status_many(self._unique_ids(server_ids), status.value)
        logger.info(f"Bulk set status '{status.value}' on {updated} of {len(server_ids)} requested servers")
        return updated

    # ===== HELPERS =====

    def _check_version(self, server_id: int, submitted_version: Optional[datetime]) -> datetime:
        """Compare the token the client edited from with the stored one; equality only."""
        if submitted_version is None:
            raise FieldValidationError.from_error_list([{"loc": ("updated_at",), "type": "missing"}])

        current_version = self.dao.get_current_version(server_id)
        if current_version is None:
            raise ServerNotFound(server_id)

        if current_version != normalize_version(submitted_version):
            logger.warning(
                f"Stale update rejected for server {server_id}: "
                f"submitted {submitted_version}, current {current_version}"
            )
            raise StaleVersionConflict()
        return current_version

    def _precheck_uniqueness(self, fields: Dict[str, Any], exclude_id: Optional[int] = None) -> None:
        taken = []

        if self.dao.check_ip_exists(fields["ip_address"], exclude_id):
            taken.append("ip_address")

        if self.dao.check_name_exists(fields["name"], fields["provider"], exclude_id):
            taken.append("name")

        if taken:
            logger.warning(f"Uniqueness pre-check rejected {taken} for {fields['name']!r}")
            raise UniquenessConflict(*taken)

    def _translate_integrity_error(
        self,
        error: IntegrityError,
        fields: Dict[str, Any]
    ) -> Optional[UniquenessConflict]:
        """Map a unique-constraint failure to its field; None when the constraint is not ours to explain."""
        message = str(error.orig)
        for markers, field in CONSTRAINT_FIELDS:
            if any(marker in message for marker in markers):
                logger.warning(
                    f"Storage constraint caught a concurrent duplicate {field} for "
                    f"{fields.get(field)!r} after the pre-check passed"
                )
                return UniquenessConflict(field)
        return None

    def _validate(self, schema: Type[SchemaT], data: Union[SchemaT, Mapping[str, Any]]) -> SchemaT:
        if isinstance(data, schema):
            return data
        if isinstance(data, BaseModel):
            data = data.model_dump()
        try:
            return schema.model_validate(data)
        except ValidationError as e:
            raise FieldValidationError.from_error_list(e.errors())

    def _to_fields(self, server_data: BaseModel) -> Dict[str, Any]:
        return server_data.model_dump(mode="json", exclude={"updated_at"})

    def _unique_ids(self, server_ids: List[int]) -> List[int]:
        return list(dict.fromkeys(server_ids))

    def _convert_to_response(self, server: Server) -> ServerResponse:
        return ServerResponse.model_validate(server)
