"""
Manifest data models.

A manifest exists in two representations:

- ManifestDocument: the raw decoded JSON object exactly as found in the
  repository, plus the bytes it came from.
- ManifestRecord: the normalized record that is persisted. Every field has
  a defined default, so downstream code never checks for optional keys.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field


class DependencyType(str, Enum):
    """Dependency class, one per package.json dependency map."""

    PRODUCTION = "PRODUCTION"
    DEVELOPMENT = "DEVELOPMENT"
    PEER = "PEER"
    OPTIONAL = "OPTIONAL"
    BUNDLED = "BUNDLED"


class PersonRole(str, Enum):
    """Role of a person listed in a manifest."""

    AUTHOR = "AUTHOR"
    CONTRIBUTOR = "CONTRIBUTOR"
    MAINTAINER = "MAINTAINER"


class Dependency(BaseModel):
    """One (name, version spec, class) triple."""

    model_config = ConfigDict(frozen=True)

    name: str
    version_spec: str
    dependency_type: DependencyType


class Script(BaseModel):
    """One npm script."""

    model_config = ConfigDict(frozen=True)

    name: str
    command: str


class Person(BaseModel):
    """A person parsed from author, contributors or maintainers."""

    model_config = ConfigDict(frozen=True)

    name: str
    email: str | None = None
    url: str | None = None
    role: PersonRole = PersonRole.CONTRIBUTOR


class ManifestDocument(BaseModel):
    """Raw manifest: decoded JSON object plus original bytes."""

    path: str = Field(default="package.json", description="Path inside the repository")
    data: dict[str, Any] = Field(..., description="Decoded JSON object")
    raw: bytes = Field(default=b"", description="Bytes as fetched")


class ManifestRecord(BaseModel):
    """
    Normalized package.json.

    Example:
        >>> record = extract_manifest(b'{"name": "web", "dependencies": {"react": "^18"}}')
        >>> record.version
        '0.0.0'
        >>> record.dependencies[0].dependency_type
        <DependencyType.PRODUCTION: 'PRODUCTION'>
    """

    path: str = "package.json"
    name: str | None = None
    version: str = "0.0.0"
    description: str | None = None
    author: str | None = Field(default=None, description="Raw author field as text")
    license: str | None = None
    license_url: str | None = None
    homepage: str | None = None
    main_file: str | None = None
    module_file: str | None = None
    types_file: str | None = None
    browser_file: str | None = None
    is_private: bool = False
    project_type: str = "library"
    package_manager: str = "npm"
    package_manager_version: str | None = None

    dependency_maps: dict[DependencyType, dict[str, str]] = Field(
        default_factory=dict,
        description="Raw dependency maps keyed by class",
    )
    dependencies: list[Dependency] = Field(default_factory=list)
    scripts: list[Script] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    people: list[Person] = Field(default_factory=list)

    full_content: dict[str, Any] = Field(default_factory=dict)
    content_hash: str = Field(..., description="SHA-256 of the canonical JSON content")

    @computed_field
    @property
    def total_dependencies(self) -> int:
        """Number of dependency rows."""
        return len(self.dependencies)

    @computed_field
    @property
    def total_scripts(self) -> int:
        """Number of script rows."""
        return len(self.scripts)

    @computed_field
    @property
    def total_keywords(self) -> int:
        """Number of keyword rows."""
        return len(self.keywords)

    def scripts_map(self) -> dict[str, str]:
        """Scripts as a name -> command mapping."""
        return {script.name: script.command for script in self.scripts}

    def qualified_name(self, full_name: str) -> str:
        """
        Name that stays unique across repositories and monorepo packages.

        Root manifests keep their declared name. Nested manifests become
        ``name@owner/repo/dir``. Unnamed manifests fall back to
        ``owner/repo`` or ``owner/repo/dir``.

        Args:
            full_name: Repository full name (owner/repo)
        """
        directory = self.path.rpartition("/")[0]
        location = f"{full_name}/{directory}" if directory else full_name
        if not self.name:
            return location
        if directory:
            return f"{self.name}@{location}"
        return self.name
