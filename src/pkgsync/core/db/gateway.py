"""
Persistence gateway: idempotent writes for the sync pipeline.

The gateway never commits. Every method runs inside the caller's
transaction so that one repository's writes land together or not at all.
sqlite3.IntegrityError is always translated to ConstraintViolationError.
"""

import json
import logging
import sqlite3
from collections.abc import Callable, Collection, Iterable, Iterator
from contextlib import contextmanager
from typing import Any

from pkgsync.core.db.connection import execute_one
from pkgsync.core.db.schema import validate_child_kind
from pkgsync.core.exceptions import ConstraintViolationError
from pkgsync.core.github.models import RepoDescriptor
from pkgsync.core.manifest.models import (
    Dependency,
    DependencyType,
    ManifestRecord,
    Person,
    Script,
)

logger = logging.getLogger(__name__)

# kind -> (columns after manifest_id, row converter)
_CHILD_COLUMNS: dict[str, tuple[tuple[str, ...], Callable[[Any], tuple[Any, ...]]]] = {
    "dependencies": (
        ("package_name", "version_spec", "dependency_type"),
        lambda d: (d.name, d.version_spec, DependencyType(d.dependency_type).value),
    ),
    "scripts": (("name", "command"), lambda s: (s.name, s.command)),
    "keywords": (("keyword",), lambda k: (k,)),
    "people": (
        ("name", "email", "url", "role"),
        lambda p: (p.name, p.email, p.url, p.role.value),
    ),
}

_DEPENDENCY_MAP_COLUMNS = {
    DependencyType.PRODUCTION: "dependencies",
    DependencyType.DEVELOPMENT: "dev_dependencies",
    DependencyType.PEER: "peer_dependencies",
    DependencyType.OPTIONAL: "optional_dependencies",
    DependencyType.BUNDLED: "bundled_dependencies",
}


@contextmanager
def translate_integrity_errors(operation: str, **context: object) -> Iterator[None]:
    """Re-raise sqlite3.IntegrityError as ConstraintViolationError."""
    try:
        yield
    except sqlite3.IntegrityError as e:
        raise ConstraintViolationError(f"{operation} failed: {e}", **context) from e


def _json_or_none(value: dict[str, str] | None) -> str | None:
    if not value:
        return None
    return json.dumps(value, ensure_ascii=False)


class PersistenceGateway:
    """
    Storage operations over one open connection.

    Example:
        >>> with get_connection(db_path) as conn:
        ...     gateway = PersistenceGateway(conn)
        ...     org_id = gateway.upsert_organization("acme")
        ...     conn.commit()
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    # ------------------------------------------------------------------
    # Organizations
    # ------------------------------------------------------------------

    def upsert_organization(self, name: str) -> int:
        """
        Get or create an organization by name.

        Returns:
            Organization id (stable across calls)
        """
        with translate_integrity_errors("upsert_organization", organization=name):
            self.conn.execute(
                """
                INSERT INTO organizations (name) VALUES (?)
                ON CONFLICT(name) DO UPDATE SET updated_at = CURRENT_TIMESTAMP
                """,
                (name,),
            )
        row = execute_one(self.conn, "SELECT id FROM organizations WHERE name = ?", (name,))
        assert row is not None
        return int(row["id"])

    def set_organization_remote_id(self, org_id: int, remote_id: int) -> None:
        """
        Record the GitHub id of an organization.

        Raises:
            ConstraintViolationError: If another organization owns this remote id
        """
        with translate_integrity_errors(
            "set_organization_remote_id", organization_id=org_id, remote_id=remote_id
        ):
            self.conn.execute(
                """
                UPDATE organizations
                SET remote_id = ?, updated_at = CURRENT_TIMESTAMP
                WHERE id = ? AND (remote_id IS NULL OR remote_id != ?)
                """,
                (remote_id, org_id, remote_id),
            )

    def get_organization(self, name: str) -> dict[str, Any] | None:
        return execute_one(self.conn, "SELECT * FROM organizations WHERE name = ?", (name,))

    # ------------------------------------------------------------------
    # Repositories
    # ------------------------------------------------------------------

    def get_repository_state(
        self, remote_id: int | None, full_name: str
    ) -> dict[str, Any] | None:
        """
        Look up the stored repository row by remote id, else full name.

        Raises:
            ConstraintViolationError: If the remote id and the full name
                resolve to two different rows
        """
        by_id = None
        if remote_id is not None:
            by_id = execute_one(
                self.conn, "SELECT * FROM repositories WHERE remote_id = ?", (remote_id,)
            )
        by_name = execute_one(
            self.conn, "SELECT * FROM repositories WHERE full_name = ?", (full_name,)
        )

        if by_id is not None and by_name is not None and by_id["id"] != by_name["id"]:
            raise ConstraintViolationError(
                f"Repository {full_name} (remote id {remote_id}) matches two rows: "
                f"{by_id['full_name']} by remote id and {by_name['full_name']} by name",
                repository=full_name,
                remote_id=remote_id,
            )

        if by_name is not None and by_id is None and remote_id is not None:
            stored = by_name["remote_id"]
            if stored is not None and stored != remote_id:
                raise ConstraintViolationError(
                    f"Repository {full_name} is stored with remote id {stored}, "
                    f"listing reports {remote_id}",
                    repository=full_name,
                    remote_id=remote_id,
                )

        return by_id or by_name

    def upsert_repository(
        self,
        org_id: int,
        repo: RepoDescriptor,
        fetched_at: str | None = None,
    ) -> int:
        """
        Insert or refresh a repository keyed by remote id, else full name.

        A rename keeps the row (matched by remote id). Seeing the repository
        again clears missing_since. last_fetched_at is only bumped when
        fetched_at is given.

        Returns:
            Repository id

        Raises:
            ConstraintViolationError: On a remote id / full name collision
        """
        existing = self.get_repository_state(repo.remote_id, repo.full_name)
        remote_updated_at = repo.last_modified.isoformat() if repo.last_modified else None

        params = {
            "organization_id": org_id,
            "remote_id": repo.remote_id,
            "name": repo.name,
            "full_name": repo.full_name,
            "description": repo.description,
            "url": repo.url,
            "default_branch": repo.default_branch,
            "archived": int(repo.archived),
            "stars": repo.stars,
            "forks": repo.forks,
            "size_kb": repo.size_kb,
            "language": repo.language,
            "remote_updated_at": remote_updated_at,
            "last_fetched_at": fetched_at,
        }

        with translate_integrity_errors(
            "upsert_repository", repository=repo.full_name, remote_id=repo.remote_id
        ):
            if existing is None:
                cursor = self.conn.execute(
                    """
                    INSERT INTO repositories (
                        organization_id, remote_id, name, full_name, description, url,
                        default_branch, archived, stars, forks, size_kb, language,
                        remote_updated_at, last_fetched_at
                    ) VALUES (
                        :organization_id, :remote_id, :name, :full_name, :description, :url,
                        :default_branch, :archived, :stars, :forks, :size_kb, :language,
                        :remote_updated_at, :last_fetched_at
                    )
                    """,
                    params,
                )
                repo_id = int(cursor.lastrowid)
                logger.debug(f"Inserted repository {repo.full_name} as {repo_id}")
                return repo_id

            params["id"] = existing["id"]
            self.conn.execute(
                """
                UPDATE repositories SET
                    organization_id = :organization_id,
                    remote_id = COALESCE(:remote_id, remote_id),
                    name = :name,
                    full_name = :full_name,
                    description = :description,
                    url = :url,
                    default_branch = :default_branch,
                    archived = :archived,
                    stars = :stars,
                    forks = :forks,
                    size_kb = :size_kb,
                    language = :language,
                    remote_updated_at = :remote_updated_at,
                    last_fetched_at = COALESCE(:last_fetched_at, last_fetched_at),
                    missing_since = NULL,
                    updated_at = CURRENT_TIMESTAMP
                WHERE id = :id
                """,
                params,
            )
            return int(existing["id"])

    def refresh_has_manifest(self, repo_id: int) -> bool:
        """
        Set has_manifest from the manifests that currently exist.

        Returns:
            The new flag value
        """
        self.conn.execute(
            """
            UPDATE repositories
            SET has_manifest = EXISTS(SELECT 1 FROM manifests WHERE repository_id = :id)
            WHERE id = :id
            """,
            {"id": repo_id},
        )
        row = execute_one(
            self.conn, "SELECT has_manifest FROM repositories WHERE id = ?", (repo_id,)
        )
        return bool(row and row["has_manifest"])

    def mark_missing_repositories(
        self,
        org_id: int,
        seen_full_names: Collection[str],
        seen_remote_ids: Collection[int] = (),
        now: str | None = None,
    ) -> int:
        """
        Flag repositories that no longer appear in the organization listing.

        Rows are never deleted; missing_since is set once and cleared by
        the next upsert that sees the repository again.

        Returns:
            Number of repositories newly flagged
        """
        names = set(seen_full_names)
        ids = set(seen_remote_ids)
        rows = self.conn.execute(
            """
            SELECT id, full_name, remote_id FROM repositories
            WHERE organization_id = ? AND missing_since IS NULL
            """,
            (org_id,),
        ).fetchall()

        missing = [
            (now, row["id"])
            for row in rows
            if row["full_name"] not in names
            and (row["remote_id"] is None or row["remote_id"] not in ids)
        ]
        if missing:
            self.conn.executemany(
                """
                UPDATE repositories
                SET missing_since = COALESCE(?, CURRENT_TIMESTAMP),
                    updated_at = CURRENT_TIMESTAMP
                WHERE id = ?
                """,
                missing,
            )
            logger.info(f"Marked {len(missing)} repositories as missing from the listing")
        return len(missing)

    # ------------------------------------------------------------------
    # Manifests
    # ------------------------------------------------------------------

    def manifest_unchanged(self, repo_id: int, path: str, content_hash: str) -> bool:
        """Check if the stored manifest at path has the given content hash."""
        row = execute_one(
            self.conn,
            "SELECT content_hash FROM manifests WHERE repository_id = ? AND path = ?",
            (repo_id, path),
        )
        return row is not None and row["content_hash"] == content_hash

    def upsert_manifest(
        self,
        repo_id: int,
        record: ManifestRecord,
        full_name: str,
        fetched_at: str,
    ) -> int:
        """
        Insert or wholesale replace the manifest at (repository, path).

        Every column is overwritten from the record; nothing is merged
        from a previous version.

        Returns:
            Manifest id (stable for a given repository and path)
        """
        maps = {
            column: _json_or_none(record.dependency_maps.get(dep_type))
            for dep_type, column in _DEPENDENCY_MAP_COLUMNS.items()
        }
        params = {
            "repository_id": repo_id,
            "path": record.path,
            "package_name": record.name,
            "qualified_name": record.qualified_name(full_name),
            "version": record.version,
            "description": record.description,
            "author": record.author,
            "license": record.license,
            "license_url": record.license_url,
            "homepage": record.homepage,
            "main_file": record.main_file,
            "module_file": record.module_file,
            "types_file": record.types_file,
            "browser_file": record.browser_file,
            "is_private": int(record.is_private),
            "project_type": record.project_type,
            "package_manager": record.package_manager,
            "package_manager_version": record.package_manager_version,
            **maps,
            "scripts": _json_or_none(record.scripts_map()),
            "full_content": json.dumps(record.full_content, ensure_ascii=False),
            "content_hash": record.content_hash,
            "total_dependencies": record.total_dependencies,
            "total_scripts": record.total_scripts,
            "total_keywords": record.total_keywords,
            "fetched_at": fetched_at,
        }
        columns = list(params)
        updates = ",\n".join(
            f"{column} = excluded.{column}"
            for column in columns
            if column not in ("repository_id", "path")
        )

        with translate_integrity_errors("upsert_manifest", repository=full_name, path=record.path):
            self.conn.execute(
                f"""
                INSERT INTO manifests ({', '.join(columns)})
                VALUES ({', '.join(':' + c for c in columns)})
                ON CONFLICT(repository_id, path) DO UPDATE SET
                    {updates},
                    updated_at = CURRENT_TIMESTAMP
                """,
                params,
            )

        row = execute_one(
            self.conn,
            "SELECT id FROM manifests WHERE repository_id = ? AND path = ?",
            (repo_id, record.path),
        )
        assert row is not None
        return int(row["id"])

    def touch_manifest(
        self,
        repo_id: int,
        path: str,
        fetched_at: str,
        qualified_name: str | None = None,
    ) -> None:
        """
        Bump fetched_at of an unchanged manifest.

        qualified_name is derived from the repository full name, so a
        renamed repository passes the new value even when the content
        hash is the same.
        """
        self.conn.execute(
            """
            UPDATE manifests
            SET fetched_at = ?, qualified_name = COALESCE(?, qualified_name)
            WHERE repository_id = ? AND path = ?
            """,
            (fetched_at, qualified_name, repo_id, path),
        )

    def delete_manifests(self, repo_id: int, keep_paths: Iterable[str] = ()) -> int:
        """
        Delete a repository's manifests, except those at keep_paths.

        Children go with them through ON DELETE CASCADE.

        Returns:
            Number of manifests deleted
        """
        keep = list(keep_paths)
        if keep:
            placeholders = ",".join("?" * len(keep))
            cursor = self.conn.execute(
                f"DELETE FROM manifests WHERE repository_id = ? AND path NOT IN ({placeholders})",
                (repo_id, *keep),
            )
        else:
            cursor = self.conn.execute("DELETE FROM manifests WHERE repository_id = ?", (repo_id,))
        return cursor.rowcount

    def replace_children(self, manifest_id: int, kind: str, rows: Iterable[Any]) -> int:
        """
        Replace every child row of one kind for a manifest.

        Deletes the current set and bulk-inserts the new one inside the
        caller's transaction.

        Args:
            manifest_id: Parent manifest
            kind: "dependencies", "scripts", "keywords" or "people"
            rows: Dependency, Script, str keyword or Person instances

        Returns:
            Number of rows inserted

        Raises:
            ValueError: If kind is unknown
            ConstraintViolationError: If the new rows violate a constraint
        """
        table = validate_child_kind(kind)
        columns, convert = _CHILD_COLUMNS[kind]
        values = [(manifest_id, *convert(row)) for row in rows]

        with translate_integrity_errors("replace_children", manifest_id=manifest_id, kind=kind):
            self.conn.execute(f"DELETE FROM {table} WHERE manifest_id = ?", (manifest_id,))
            if values:
                placeholders = ",".join("?" * (len(columns) + 1))
                self.conn.executemany(
                    f"INSERT INTO {table} (manifest_id, {', '.join(columns)}) "
                    f"VALUES ({placeholders})",
                    values,
                )
        return len(values)

    def replace_all_children(self, manifest_id: int, record: ManifestRecord) -> None:
        """Replace dependencies, scripts, keywords and people from a record."""
        children: dict[str, list[Dependency] | list[Script] | list[str] | list[Person]] = {
            "dependencies": record.dependencies,
            "scripts": record.scripts,
            "keywords": record.keywords,
            "people": record.people,
        }
        for kind, rows in children.items():
            self.replace_children(manifest_id, kind, rows)

    # ------------------------------------------------------------------
    # Counts
    # ------------------------------------------------------------------

    def count_repositories(
        self, org_id: int | None = None, *, has_manifest: bool | None = None
    ) -> int:
        query = "SELECT COUNT(*) AS n FROM repositories WHERE 1 = 1"
        params: list[Any] = []
        if org_id is not None:
            query += " AND organization_id = ?"
            params.append(org_id)
        if has_manifest is not None:
            query += " AND has_manifest = ?"
            params.append(int(has_manifest))
        row = execute_one(self.conn, query, tuple(params))
        return int(row["n"]) if row else 0

    def count_manifests(self, repo_id: int | None = None) -> int:
        if repo_id is None:
            row = execute_one(self.conn, "SELECT COUNT(*) AS n FROM manifests")
        else:
            row = execute_one(
                self.conn,
                "SELECT COUNT(*) AS n FROM manifests WHERE repository_id = ?",
                (repo_id,),
            )
        return int(row["n"]) if row else 0

    def count_children(self, kind: str, *, repo_id: int | None = None) -> int:
        """Count child rows of one kind, optionally for one repository."""
        table = validate_child_kind(kind)
        if repo_id is None:
            row = execute_one(self.conn, f"SELECT COUNT(*) AS n FROM {table}")
        else:
            row = execute_one(
                self.conn,
                f"""
                SELECT COUNT(*) AS n FROM {table} c
                JOIN manifests m ON m.id = c.manifest_id
                WHERE m.repository_id = ?
                """,
                (repo_id,),
            )
        return int(row["n"]) if row else 0
