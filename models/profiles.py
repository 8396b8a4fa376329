"""
models/profiles.py
------------------
Connection profiles for the source and target databases.

Profiles arrive as ``key1=value1,key2=value2`` strings (the form the CLI
accepts) and are validated into pydantic models.
"""
from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, ValidationError, model_validator

from config import CONFIG


class ProfileError(ValueError):
    """Raised when a profile string or its values are invalid."""


class Dialect(str, Enum):
    """Supported source dialects."""
    MYSQL = "mysql"
    POSTGRESQL = "postgresql"
    DYNAMODB = "dynamodb"


class SourceMode(str, Enum):
    DUMP = "dump"
    LIVE = "live"


class CollisionPolicy(str, Enum):
    """What to do when two source namespaces flatten to the same table name."""
    ERROR = "error"
    RENAME = "rename"
    SKIP = "skip"


_DIALECT_ALIASES = {
    "mysql": Dialect.MYSQL,
    "mysqldump": Dialect.MYSQL,
    "postgres": Dialect.POSTGRESQL,
    "postgresql": Dialect.POSTGRESQL,
    "pg_dump": Dialect.POSTGRESQL,
    "dynamodb": Dialect.DYNAMODB,
}

_DEFAULT_PORTS = {Dialect.MYSQL: 3306, Dialect.POSTGRESQL: 5432}


def parse_profile_string(profile: str) -> dict[str, str]:
    """
    Split ``"file=dump.sql,format=dump"`` into ``{"file": ..., "format": ...}``.

    Keys are lower-cased; values keep their case.  Values may contain ``=``
    but not ``,``.

    Raises:
        ProfileError: On an entry without ``=`` or a duplicate key.
    """
    result: dict[str, str] = {}
    if not profile or not profile.strip():
        return result
    for entry in profile.split(","):
        entry = entry.strip()
        if not entry:
            continue
        if "=" not in entry:
            raise ProfileError(f"Profile entry '{entry}' is not of the form key=value.")
        key, value = entry.split("=", 1)
        key = key.strip().lower()
        if key in result:
            raise ProfileError(f"Duplicate profile key '{key}'.")
        result[key] = value.strip()
    return result


def resolve_dialect(name: str) -> Dialect:
    try:
        return _DIALECT_ALIASES[name.strip().lower()]
    except KeyError:
        supported = ", ".join(sorted({d.value for d in Dialect}))
        raise ProfileError(f"Unsupported source '{name}' (supported: {supported}).") from None


class SourceProfile(BaseModel):
    """Where and how to read the source schema."""
    dialect: Dialect
    mode: SourceMode = SourceMode.DUMP
    file: Optional[Path] = None
    host: str = "localhost"
    port: Optional[int] = None
    user: Optional[str] = None
    password: Optional[str] = None
    dbname: Optional[str] = None
    collision: CollisionPolicy = Field(
        default_factory=lambda: CollisionPolicy(CONFIG.source.collision_policy)
    )

    @model_validator(mode="after")
    def _check_mode(self) -> "SourceProfile":
        if self.mode is SourceMode.LIVE:
            if self.dialect is Dialect.DYNAMODB:
                raise ValueError("dynamodb sources are read from an export file")
            if not self.user or not self.dbname:
                raise ValueError("live sources need 'user' and 'dbname'")
            if self.port is None:
                self.port = _DEFAULT_PORTS[self.dialect]
        elif self.dialect is Dialect.DYNAMODB and self.file is None:
            raise ValueError("dynamodb sources need 'file' (a describe-table export)")
        return self

    @classmethod
    def from_string(cls, source: str, profile: str) -> "SourceProfile":
        """
        Build a profile from the ``--source`` tag and ``--source-profile`` string.

        A profile with ``host`` or ``dbname`` but no ``file`` is a live
        connection unless ``format=dump`` says otherwise.
        """
        values: dict[str, object] = dict(parse_profile_string(profile))
        values["dialect"] = resolve_dialect(source)
        fmt = values.pop("format", None)
        if fmt is None:
            fmt = "dump" if "file" in values or not ("host" in values or "dbname" in values) else "live"
        values["mode"] = fmt
        try:
            return cls(**values)
        except ValidationError as exc:
            raise ProfileError(f"Invalid source profile: {exc}") from exc


class TargetProfile(BaseModel):
    """The target database and its verification endpoint."""
    dialect: str = "google_standard_sql"
    project: Optional[str] = None
    instance: Optional[str] = None
    dbname: Optional[str] = None
    verify_endpoint: Optional[str] = Field(default_factory=lambda: CONFIG.verifier.endpoint)
    timeout: float = Field(default_factory=lambda: CONFIG.verifier.timeout, gt=0)

    @model_validator(mode="after")
    def _check_dialect(self) -> "TargetProfile":
        if self.dialect.lower() != "google_standard_sql":
            raise ValueError(f"unsupported target dialect '{self.dialect}'")
        self.dialect = self.dialect.lower()
        return self

    @classmethod
    def from_string(cls, profile: str) -> "TargetProfile":
        values = parse_profile_string(profile)
        if "endpoint" in values:
            values["verify_endpoint"] = values.pop("endpoint")
        try:
            return cls(**values)
        except ValidationError as exc:
            raise ProfileError(f"Invalid target profile: {exc}") from exc
