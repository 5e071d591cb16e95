"""
SQLite schema for the pkgsync database.

Schema Design:
- organizations: GitHub organizations, keyed by name
- repositories: repositories of an organization, keyed by remote id
  (falling back to full_name)
- manifests: one row per (repository, manifest path)
- manifest_dependencies / manifest_scripts / manifest_keywords /
  manifest_people: normalized children of a manifest, replaced wholesale
  on every analysis
- schema_info: Version tracking for migrations

Foreign keys:
- repositories -> organizations: ON UPDATE CASCADE, ON DELETE RESTRICT
- manifests -> repositories: ON DELETE CASCADE
- children -> manifests: ON DELETE CASCADE
"""

import sqlite3

# Bump together with SCHEMA_DDL
SCHEMA_VERSION = 2

DEPENDENCY_TYPES = [
    "PRODUCTION",
    "DEVELOPMENT",
    "PEER",
    "OPTIONAL",
    "BUNDLED",
]

PERSON_ROLES = [
    "AUTHOR",
    "CONTRIBUTOR",
    "MAINTAINER",
]

# Columns added after version 1, applied to older databases by create_schema
ADDED_REPOSITORY_COLUMNS = {
    "stars": "INTEGER NOT NULL DEFAULT 0",
    "forks": "INTEGER NOT NULL DEFAULT 0",
    "size_kb": "INTEGER NOT NULL DEFAULT 0",
    "language": "TEXT",
}

# Child tables replaced as a unit, keyed by the kind name used by the gateway
CHILD_TABLES = {
    "dependencies": "manifest_dependencies",
    "scripts": "manifest_scripts",
    "keywords": "manifest_keywords",
    "people": "manifest_people",
}

SCHEMA_DDL = """
-- One row per applied schema version
CREATE TABLE IF NOT EXISTS schema_info (
    version INTEGER PRIMARY KEY,
    applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    description TEXT
);

CREATE TABLE IF NOT EXISTS organizations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE,
    remote_id INTEGER UNIQUE,

    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS repositories (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    organization_id INTEGER NOT NULL,
    remote_id INTEGER UNIQUE,
    name TEXT NOT NULL,
    full_name TEXT NOT NULL UNIQUE,
    description TEXT,
    url TEXT NOT NULL DEFAULT '',
    default_branch TEXT NOT NULL DEFAULT 'main',
    has_manifest INTEGER NOT NULL DEFAULT 0 CHECK(has_manifest IN (0, 1)),
    archived INTEGER NOT NULL DEFAULT 0,
    stars INTEGER NOT NULL DEFAULT 0,
    forks INTEGER NOT NULL DEFAULT 0,
    size_kb INTEGER NOT NULL DEFAULT 0,
    language TEXT,
    remote_updated_at TIMESTAMP,
    last_fetched_at TIMESTAMP,
    -- Set when the repository disappears from the organization listing
    missing_since TIMESTAMP,

    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,

    FOREIGN KEY (organization_id) REFERENCES organizations(id)
        ON UPDATE CASCADE ON DELETE RESTRICT
);

CREATE TABLE IF NOT EXISTS manifests (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    repository_id INTEGER NOT NULL,
    path TEXT NOT NULL DEFAULT 'package.json',

    package_name TEXT,
    qualified_name TEXT NOT NULL,
    version TEXT NOT NULL DEFAULT '0.0.0',
    description TEXT,
    author TEXT,
    license TEXT,
    license_url TEXT,
    homepage TEXT,
    main_file TEXT,
    module_file TEXT,
    types_file TEXT,
    browser_file TEXT,
    is_private INTEGER NOT NULL DEFAULT 0,
    project_type TEXT NOT NULL DEFAULT 'library',
    package_manager TEXT NOT NULL DEFAULT 'npm',
    package_manager_version TEXT,

    -- Raw maps per dependency class
    dependencies JSON,
    dev_dependencies JSON,
    peer_dependencies JSON,
    optional_dependencies JSON,
    bundled_dependencies JSON,
    scripts JSON,
    full_content JSON NOT NULL,
    content_hash TEXT NOT NULL,

    total_dependencies INTEGER NOT NULL DEFAULT 0,
    total_scripts INTEGER NOT NULL DEFAULT 0,
    total_keywords INTEGER NOT NULL DEFAULT 0,

    fetched_at TIMESTAMP NOT NULL,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,

    FOREIGN KEY (repository_id) REFERENCES repositories(id) ON DELETE CASCADE,

    UNIQUE(repository_id, path)
);

CREATE TABLE IF NOT EXISTS manifest_dependencies (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    manifest_id INTEGER NOT NULL,
    package_name TEXT NOT NULL,
    version_spec TEXT NOT NULL,
    dependency_type TEXT NOT NULL CHECK(dependency_type IN ('PRODUCTION', 'DEVELOPMENT',
                                                           'PEER', 'OPTIONAL', 'BUNDLED')),
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,

    FOREIGN KEY (manifest_id) REFERENCES manifests(id) ON DELETE CASCADE,

    UNIQUE(manifest_id, package_name, dependency_type)
);

CREATE TABLE IF NOT EXISTS manifest_scripts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    manifest_id INTEGER NOT NULL,
    name TEXT NOT NULL,
    command TEXT NOT NULL,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,

    FOREIGN KEY (manifest_id) REFERENCES manifests(id) ON DELETE CASCADE,

    UNIQUE(manifest_id, name)
);

CREATE TABLE IF NOT EXISTS manifest_keywords (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    manifest_id INTEGER NOT NULL,
    keyword TEXT NOT NULL,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,

    FOREIGN KEY (manifest_id) REFERENCES manifests(id) ON DELETE CASCADE,

    UNIQUE(manifest_id, keyword)
);

CREATE TABLE IF NOT EXISTS manifest_people (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    manifest_id INTEGER NOT NULL,
    name TEXT NOT NULL,
    email TEXT,
    url TEXT,
    role TEXT NOT NULL CHECK(role IN ('AUTHOR', 'CONTRIBUTOR', 'MAINTAINER')),
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,

    FOREIGN KEY (manifest_id) REFERENCES manifests(id) ON DELETE CASCADE
);

-- At most one author per manifest
CREATE UNIQUE INDEX IF NOT EXISTS idx_manifest_people_author
    ON manifest_people(manifest_id) WHERE role = 'AUTHOR';

-- Lookup indexes
CREATE INDEX IF NOT EXISTS idx_repositories_org ON repositories(organization_id);
CREATE INDEX IF NOT EXISTS idx_manifests_repository ON manifests(repository_id);
CREATE INDEX IF NOT EXISTS idx_manifests_package_name ON manifests(package_name);
CREATE INDEX IF NOT EXISTS idx_dependencies_manifest ON manifest_dependencies(manifest_id);
CREATE INDEX IF NOT EXISTS idx_dependencies_package ON manifest_dependencies(package_name);
CREATE INDEX IF NOT EXISTS idx_scripts_manifest ON manifest_scripts(manifest_id);
CREATE INDEX IF NOT EXISTS idx_keywords_manifest ON manifest_keywords(manifest_id);
CREATE INDEX IF NOT EXISTS idx_people_manifest ON manifest_people(manifest_id);
"""


def create_schema(conn: sqlite3.Connection) -> None:
    """
    Apply SCHEMA_DDL and record SCHEMA_VERSION, then commit.

    Every statement is guarded with IF NOT EXISTS, so running this
    against an up-to-date database changes nothing. A version 1 database
    gains the repository columns it lacks.

    >>> import sqlite3
    >>> conn = sqlite3.connect(":memory:")
    >>> create_schema(conn)
    >>> get_schema_version(conn)
    2
    """
    conn.executescript(SCHEMA_DDL)
    _add_missing_columns(conn, "repositories", ADDED_REPOSITORY_COLUMNS)
    conn.execute(
        "INSERT OR REPLACE INTO schema_info (version, description) VALUES (?, ?)",
        (SCHEMA_VERSION, "Repository stats: stars, forks, size_kb, language"),
    )
    conn.commit()


def _add_missing_columns(conn: sqlite3.Connection, table: str, columns: dict[str, str]) -> None:
    rows = conn.execute(f"PRAGMA table_info({table})").fetchall()
    present = {row["name"] if isinstance(row, dict) else row[1] for row in rows}
    for name, definition in columns.items():
        if name not in present:
            conn.execute(f"ALTER TABLE {table} ADD COLUMN {name} {definition}")


def get_schema_version(conn: sqlite3.Connection) -> int | None:
    """Highest recorded schema version, or None for a database never initialised."""
    try:
        row = conn.execute("SELECT MAX(version) AS version FROM schema_info").fetchone()
    except sqlite3.OperationalError:
        return None
    if row is None:
        return None
    # Works with and without dict_factory
    return row["version"] if isinstance(row, dict) else row[0]


def needs_migration(conn: sqlite3.Connection) -> bool:
    version = get_schema_version(conn)
    return version is None or version < SCHEMA_VERSION


def validate_dependency_type(dependency_type: str) -> None:
    if dependency_type in DEPENDENCY_TYPES:
        return
    allowed = ", ".join(DEPENDENCY_TYPES)
    raise ValueError(f"Invalid dependency type: {dependency_type}. Must be one of: {allowed}")


def validate_child_kind(kind: str) -> str:
    """
    Map a gateway child kind ("dependencies", "people", ...) to its table.

    Raises:
        ValueError: If `kind` is not one of CHILD_TABLES
    """
    table = CHILD_TABLES.get(kind)
    if table is None:
        raise ValueError(f"Invalid child kind: {kind}. Must be one of: {', '.join(CHILD_TABLES)}")
    return table
