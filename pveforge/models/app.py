"""App recipe models for installing media services inside containers."""
import re
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

_PACKAGE_RE = re.compile(r'^[a-z0-9][a-z0-9\-\.+]*$')
_UNIT_NAME_RE = re.compile(r'^[A-Za-z0-9@_\-\.]+$')


def _check_packages(packages: List[str]) -> List[str]:
    for package in packages:
        if not _PACKAGE_RE.match(package):
            raise ValueError(
                f"Package name '{package}' contains invalid characters. "
                "Must be lowercase letters, numbers, hyphens, dots, and plus signs."
            )
    return packages


class AppRepository(BaseModel):
    """Third-party apt repository trusted through a dedicated keyring."""

    model_config = ConfigDict(extra='forbid')

    key_url: str
    keyring: str = Field(..., description="Path the dearmored key is written to")
    source: str = Field(..., description="deb line; may reference {{ keyring }} and {{ release }}")
    list_file: str = Field(..., description="File name under /etc/apt/sources.list.d/")

    @field_validator('key_url')
    @classmethod
    def validate_key_url(cls, v):
        """Keys are only fetched over HTTPS."""
        if not v.startswith('https://'):
            raise ValueError(f"Repository key URL must use https://, got: {v}")
        return v

    @field_validator('keyring')
    @classmethod
    def validate_keyring(cls, v):
        if not v.startswith('/') or not v.endswith('.gpg'):
            raise ValueError(f"Keyring must be an absolute path ending in .gpg, got: {v}")
        return v

    @field_validator('list_file')
    @classmethod
    def validate_list_file(cls, v):
        if '/' in v or not v.endswith('.list'):
            raise ValueError(f"list_file must be a bare *.list file name, got: {v}")
        return v


class AppService(BaseModel):
    """systemd service that runs the app."""

    model_config = ConfigDict(extra='forbid')

    name: str
    unit: Optional[str] = Field(None, description="Unit file text; omitted when the package ships one")

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        if not _UNIT_NAME_RE.match(v):
            raise ValueError(f"Invalid service name: {v}")
        return v


class ConfigEdit(BaseModel):
    """Literal search/replace applied to a file after installation."""

    model_config = ConfigDict(extra='forbid')

    path: str
    search: str
    replace: str

    @field_validator('path')
    @classmethod
    def validate_path(cls, v):
        if not v.startswith('/'):
            raise ValueError(f"Config edit path must be absolute, got: {v}")
        return v


class AppRecipe(BaseModel):
    """Declarative install recipe for one app."""

    model_config = ConfigDict(extra='forbid')

    name: str
    description: str = ""
    release: str = "bookworm"
    debian_sources: bool = Field(True, description="Rewrite /etc/apt/sources.list before installing")
    backports: bool = Field(False, description="Enable backports and install packages from it")
    prerequisites: List[str] = Field(default_factory=lambda: ["curl", "gnupg"])
    repository: Optional[AppRepository] = None
    system_user: Optional[str] = None
    directories: List[str] = Field(default_factory=list)
    dependencies: List[str] = Field(default_factory=list)
    packages: List[str] = Field(..., min_length=1)
    service: Optional[AppService] = None
    config_edits: List[ConfigEdit] = Field(default_factory=list)
    health_check: bool = True
    access_url: Optional[str] = None

    @field_validator('prerequisites', 'dependencies', 'packages')
    @classmethod
    def validate_packages(cls, v):
        """Validate package names."""
        return _check_packages(v)

    @model_validator(mode='after')
    def validate_layout(self) -> 'AppRecipe':
        """Directories need an owner and health checks need a service."""
        if self.directories and not self.system_user:
            raise ValueError("directories require system_user to own them")
        if self.health_check and not self.service:
            raise ValueError("health_check requires a service")
        return self

    @property
    def target_release(self) -> Optional[str]:
        return f"{self.release}-backports" if self.backports else None
