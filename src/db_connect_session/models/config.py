"""Connection parameter and configuration models."""

import os
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import AliasChoices, BaseModel, Field, field_validator

DEFAULT_CONNECTION_NAME = "default"
DEFAULT_BACKEND_KIND = "sql"


class BackendKind(BaseModel):
    """A supported backend kind and how to reach it through SQLAlchemy."""

    name: str = Field(..., description="Key used in credential documents")
    drivername: str = Field(..., description="SQLAlchemy driver name")
    default_port: Optional[int] = Field(
        None, description="Port used when the credentials do not name one"
    )

    model_config = {"frozen": True}

    @property
    def dialect(self) -> str:
        """Base dialect (e.g. "mysql" from "mysql+pymysql")."""
        return self.drivername.split("+")[0]

    @property
    def is_file_based(self) -> bool:
        """File databases ignore host, user, password and port."""
        return self.dialect == "sqlite"


BACKEND_KINDS: dict[str, BackendKind] = {
    "sql": BackendKind(name="sql", drivername="mysql+pymysql", default_port=3306),
    "mysql": BackendKind(name="mysql", drivername="mysql+pymysql", default_port=3306),
    "postgresql": BackendKind(
        name="postgresql", drivername="postgresql+psycopg2", default_port=5432
    ),
    "sqlite": BackendKind(name="sqlite", drivername="sqlite"),
}


def get_backend_kind(name: str) -> BackendKind:
    """
    Look up a backend kind by name.

    Args:
        name: Backend kind key (sql, mysql, postgresql, sqlite)

    Returns:
        The matching BackendKind

    Raises:
        ValueError: If the kind is not supported
    """
    kind = BACKEND_KINDS.get(name)
    if kind is None:
        raise ValueError(
            f"Unsupported backend kind: {name}. "
            f"Supported kinds: {', '.join(BACKEND_KINDS.keys())}"
        )
    return kind


class ConnectionParams(BaseModel):
    """Credentials for one named connection."""

    host: str = Field(..., description="Database host")
    user: str = Field(..., description="Database user")
    password: str = Field(
        ...,
        validation_alias=AliasChoices("pass", "password"),
        description="Database password",
    )
    database: str = Field(
        ...,
        validation_alias=AliasChoices("db", "database"),
        description="Database name (file path for sqlite)",
    )
    port: Optional[int] = Field(
        None, ge=1, le=65535, description="Port, backend default when omitted"
    )

    model_config = {"frozen": True, "populate_by_name": True}

    @field_validator("port", mode="before")
    @classmethod
    def empty_port_is_default(cls, v: Any) -> Any:
        """Treat 0, "" and null as "use the backend default"."""
        if v in (None, "", 0, "0"):
            return None
        return v

    def with_default_port(self, port: Optional[int]) -> "ConnectionParams":
        """Return a copy whose port falls back to ``port`` when unset."""
        if self.port is not None or port is None:
            return self
        return self.model_copy(update={"port": port})

    def with_overrides(
        self, overrides: Optional["CredentialOverrides"]
    ) -> "ConnectionParams":
        """Return a copy with the explicit overrides applied."""
        if overrides is None:
            return self
        update = overrides.model_dump(exclude_none=True)
        if not update:
            return self
        return self.model_copy(update=update)

    @property
    def connection_name(self) -> str:
        """Name used to cache ad-hoc connections built from these params."""
        port = f":{self.port}" if self.port else ""
        return f"{self.user}@{self.host}{port}/{self.database}"


class CredentialOverrides(BaseModel):
    """Explicit user/password/database that win over stored credentials."""

    user: Optional[str] = Field(None, description="User to connect as")
    password: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("pass", "password"),
        description="Password to connect with",
    )
    database: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("db", "database"),
        description="Database to select",
    )

    model_config = {"frozen": True, "populate_by_name": True}


class EngineConfig(BaseModel):
    """Settings applied to every SQLAlchemy engine the registry creates."""

    echo_sql: bool = Field(
        default=False,
        description="Echo SQL statements through SQLAlchemy's logger",
    )
    connect_timeout: Optional[int] = Field(
        default=10,
        ge=1,
        le=300,
        description="Handshake timeout in seconds for network backends",
    )
    charset: str = Field(
        default="utf8mb4",
        description="Character set requested from MySQL backends",
    )


class ContextConfig(BaseModel):
    """Configuration for building a DatabaseContext."""

    credentials_path: Optional[str] = Field(
        None, description="JSON credentials document to load on start"
    )
    default_backend_kind: str = Field(
        default=DEFAULT_BACKEND_KIND,
        description="Backend kind used when a Session does not name one",
    )
    default_connection_name: str = Field(
        default=DEFAULT_CONNECTION_NAME,
        description="Connection name used when a Session does not name one",
    )
    engine: EngineConfig = Field(default_factory=EngineConfig)

    @field_validator("default_backend_kind")
    @classmethod
    def validate_backend_kind(cls, v: str) -> str:
        """Reject backend kinds the registry cannot build."""
        get_backend_kind(v)
        return v

    @classmethod
    def from_env(cls) -> "ContextConfig":
        """Build configuration from environment variables (and a .env file)."""
        load_dotenv()

        engine = EngineConfig(
            echo_sql=os.getenv("DB_ECHO_SQL", "false").lower() in ("1", "true", "yes"),
        )
        return cls(
            credentials_path=os.getenv("DB_CREDENTIALS_PATH"),
            default_backend_kind=os.getenv("DB_BACKEND_KIND", DEFAULT_BACKEND_KIND),
            default_connection_name=os.getenv(
                "DB_CONNECTION_NAME", DEFAULT_CONNECTION_NAME
            ),
            engine=engine,
        )

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "credentials_path": "db_credentials.json",
                    "default_backend_kind": "sql",
                    "default_connection_name": "default",
                    "engine": {"echo_sql": False, "charset": "utf8mb4"},
                }
            ]
        }
    }
