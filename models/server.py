from sqlalchemy import CheckConstraint, Column, DateTime, Index, Integer, String, UniqueConstraint
from sqlalchemy.dialects import mysql
from config.config_database import Base


# microsecond precision, updated_at is the optimistic-lock token
PreciseDateTime = DateTime().with_variant(mysql.DATETIME(fsp=6), "mysql")


class Server(Base):
    __tablename__ = "servers"
    __table_args__ = (
        UniqueConstraint("ip_address", name="uq_servers_ip_address"),
        UniqueConstraint("name", "provider", name="uq_servers_name_provider"),
        CheckConstraint("cpu_cores BETWEEN 1 AND 128", name="ck_servers_cpu_cores"),
        CheckConstraint("ram_mb BETWEEN 512 AND 1048576", name="ck_servers_ram_mb"),
        CheckConstraint("storage_gb BETWEEN 10 AND 1048576", name="ck_servers_storage_gb"),
        CheckConstraint(
            "provider IN ('aws', 'digitalocean', 'vultr', 'other')",
            name="ck_servers_provider"
        ),
        CheckConstraint(
            "status IN ('active', 'inactive', 'maintenance')",
            name="ck_servers_status"
        ),
        Index("ix_servers_status_provider", "status", "provider"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(255), nullable=False, index=True)
    ip_address = Column(String(45), nullable=False)
    provider = Column(String(20), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="active", index=True)
    cpu_cores = Column(Integer, nullable=False)
    ram_mb = Column(Integer, nullable=False)
    storage_gb = Column(Integer, nullable=False)
    created_at = Column(PreciseDateTime, nullable=False, index=True)
    updated_at = Column(PreciseDateTime, nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<Server id={self.id} name={self.name!r} ip={self.ip_address}>"
