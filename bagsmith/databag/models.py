"""
Data models for data bag provisioning.

Run results are plain dataclasses, matching the frozen-dataclass pattern in
bagsmith.config. The YAML entry schema is a Pydantic model so malformed
config is rejected with a readable error before anything touches the store.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, field_validator

ITEM_PLACEHOLDER = "%s"


class SecretStore(Protocol):
    """What provisioning needs from a key-value secret store."""

    def keys(self) -> set[str]: ...

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> bool: ...


class ExitCode(IntEnum):
    OK = 0
    EMPTY = 1
    UPLOAD_FAILED = 2
    DISTRIBUTION_FAILED = 3
    STORE_ERROR = 4
    CONFIG_ERROR = 5


class DataBagEntry(BaseModel):
    """One data bag family as declared in config.yaml."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str
    trousseau_store: Path
    data_bag_secret: str
    description: str
    data_bag: dict[str, Any]
    always_distribute: bool = False

    @classmethod
    def from_config(cls, name: str, settings: Mapping[str, Any] | None) -> DataBagEntry:
        """Build an entry, filling in the defaults for absent fields."""
        settings = dict(settings or {})
        settings.setdefault("trousseau_store", f"./{name}/trousseau.asc")
        settings.setdefault("data_bag_secret", f"/etc/chef/{name}_data_bag_secret")
        settings.setdefault("description", f"Create/Upload encrypted data bag for {name}")
        settings["name"] = name
        return cls.model_validate(settings)

    @field_validator("data_bag")
    @classmethod
    def _check_template(cls, value: dict[str, Any]) -> dict[str, Any]:
        _validate_template(value, path="data_bag")
        if "id" in value and not isinstance(value["id"], str):
            raise ValueError("data_bag.id must be a pattern string, not a mapping")
        return value


def _validate_template(template: Mapping[str, Any], path: str) -> None:
    for key, value in template.items():
        where = f"{path}.{key}"
        if not isinstance(key, str):
            raise ValueError(f"{where}: keys must be strings")
        if isinstance(value, Mapping):
            _validate_template(value, where)
        elif not isinstance(value, str):
            raise ValueError(f"{where}: expected a pattern string or mapping, got {type(value).__name__}")
        elif value.count(ITEM_PLACEHOLDER) > 1:
            raise ValueError(f"{where}: pattern '{value}' has more than one {ITEM_PLACEHOLDER}")


@dataclass
class UploadResult:
    """Outcome of encrypting and uploading one data bag item."""

    data_bag: str
    item_id: str
    ok: bool
    returncode: int | None = None
    error: str = ""


@dataclass
class DistributionResult:
    """Outcome of copying the data_bag_secret to one target."""

    target: str
    ok: bool
    error: str = ""


@dataclass
class InvocationResult:
    """Everything one `bagsmith <data_bag> <item>` run did."""

    data_bag: str
    item: str
    exit_code: ExitCode
    item_id: str = ""
    secret_generated: bool = False
    upload: UploadResult | None = None
    distribution: list[DistributionResult] = field(default_factory=list)
    distribution_skipped: bool = False

    @property
    def failed_targets(self) -> list[str]:
        return [r.target for r in self.distribution if not r.ok]
