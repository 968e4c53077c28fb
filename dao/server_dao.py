import logging
from datetime import datetime, timedelta, timezone
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from sqlalchemy import or_, update
from typing import Any, Dict, Optional, List, Tuple
from models.server import Server
from utils.exceptions import ServerNotFound, StaleVersionConflict

logger = logging.getLogger(__name__)

VERSION_RESOLUTION = timedelta(microseconds=1)


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def next_version(previous: Optional[datetime] = None) -> datetime:
    """
    Version token for the next write of a record.

    Always strictly greater than ``previous`` even when the clock has not
    moved past it (two writes inside one clock tick, or a clock step back).
    """
    now = utc_now()
    if previous is not None and now <= previous:
        return previous + VERSION_RESOLUTION
    return now


class ServerDAO:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, server_id: int) -> Optional[Server]:
        return self.db.query(Server).filter(Server.id == server_id).first()

    def get_current_version(self, server_id: int) -> Optional[datetime]:
        # column query, always read from the database rather than the identity map
        return self.db.query(Server.updated_at).filter(Server.id == server_id).scalar()

    def search_servers(
        self,
        status: Optional[str] = None,
        provider: Optional[str] = None,
        keyword: Optional[str] = None,
        sort: str = "created_at",
        direction: str = "desc"
    ) -> Tuple[List[Server], int]:
        query = self.db.query(Server)

        if status:
            query = query.filter(Server.status == status)
        if provider:
            query = query.filter(Server.provider == provider)
        if keyword and keyword.strip():
            query = query.filter(
                or_(
                    Server.name.ilike(f"%{keyword.strip()}%"),
                    Server.ip_address.ilike(f"%{keyword.strip()}%")
                )
            )

        column = getattr(Server, sort)
        if direction == "asc":
            query = query.order_by(column.asc(), Server.id.asc())
        else:
            query = query.order_by(column.desc(), Server.id.desc())

        servers = query.all()
        return servers, len(servers)

    def create(self, fields: Dict[str, Any]) -> Server:
        now = utc_now()
        server = Server(**fields, created_at=now, updated_at=now)
        try:
            self.db.add(server)
            self.db.commit()
            self.db.refresh(server)
            return server

        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"Insert of server {fields.get('name')!r} rejected by constraint: {e.orig}")
            raise e
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error creating server: {e}")
            raise e

    def update_if_version_matches(
        self,
        server_id: int,
        expected_version: datetime,
        fields: Dict[str, Any]
    ) -> Server:
        """
        Write ``fields`` only if the stored version still equals ``expected_version``.

        The version advance and the field changes go out as one UPDATE
        statement guarded by the expected version, so a concurrent writer
        either lands before us (we match nothing) or after us.
        """
        stmt = (
            update(Server)
            .where(Server.id == server_id, Server.updated_at == expected_version)
            .values(**fields, updated_at=next_version(expected_version))
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.db.execute(stmt)
            if result.rowcount == 0:
                self.db.rollback()
                if self.get_by_id(server_id) is None:
                    raise ServerNotFound(server_id)
                raise StaleVersionConflict()
            self.db.commit()

        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"Update of server {server_id} rejected by constraint: {e.orig}")
            raise e
        except (ServerNotFound, StaleVersionConflict):
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error updating server {server_id}: {e}")
            raise e

        server = self.get_by_id(server_id)
        if server is None:
            raise ServerNotFound(server_id)
        return server

    def delete(self, server_id: int) -> bool:
        server = self.get_by_id(server_id)
        if not server:
            return False
        try:
            self.db.delete(server)
            self.db.commit()
            return True

        except Exception as e:
            self.db.rollback()
            logger.error(f"Error deleting server {server_id}: {e}")
            raise e

    def delete_many(self, server_ids: List[int]) -> int:
        if not server_ids:
            return 0
        try:
            deleted = self.db.query(Server)\
                .filter(Server.id.in_(server_ids))\
                .delete(synchronize_session=False)
            self.db.commit()
            return deleted

        except Exception as e:
            self.db.rollback()
            logger.error(f"Error bulk deleting servers: {e}")
            raise e

    def update_status_many(self, server_ids: List[int], status: str) -> int:
        if not server_ids:
            return 0
        try:
            servers = self.db.query(Server)\
                .filter(Server.id.in_(server_ids))\
                .with_for_update()\
                .all()
            for server in servers:
                server.status = status
                server.updated_at = next_version(server.updated_at)
            self.db.commit()
            return len(servers)

        except Exception as e:
            self.db.rollback()
            logger.error(f"Error bulk updating server status: {e}")
            raise e

    def check_ip_exists(self, ip_address: str, exclude_id: Optional[int] = None) -> bool:
        query = self.db.query(Server.id).filter(Server.ip_address == ip_address)

        if exclude_id is not None:
            query = query.filter(Server.id != exclude_id)

        return query.first() is not None

    def check_name_exists(self, name: str, provider: str, exclude_id: Optional[int] = None) -> bool:
        query = self.db.query(Server.id).filter(
            Server.name == name,
            Server.provider == provider
        )

        if exclude_id is not None:
            query = query.filter(Server.id != exclude_id)

        return query.first() is not None
