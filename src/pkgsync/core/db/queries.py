"""
Read-side queries over synchronized data.

Used by the CLI to show repository catalogs and dependency usage.
"""

import json
import sqlite3
from typing import Any

from pkgsync.core.db.connection import execute_one, execute_query
from pkgsync.core.db.schema import validate_dependency_type


def list_repositories(conn: sqlite3.Connection, org_name: str) -> list[dict[str, Any]]:
    """
    Repositories of an organization with their manifest counts.

    Returns:
        Rows ordered by full_name with keys full_name, url, default_branch,
        has_manifest, manifest_count, last_fetched_at, missing_since, stars,
        forks, size_kb, language
    """
    return execute_query(
        conn,
        """
        SELECT r.full_name, r.url, r.default_branch, r.has_manifest,
               r.last_fetched_at, r.missing_since,
               r.stars, r.forks, r.size_kb, r.language,
               COUNT(m.id) AS manifest_count
        FROM repositories r
        JOIN organizations o ON o.id = r.organization_id
        LEFT JOIN manifests m ON m.repository_id = r.id
        WHERE o.name = ?
        GROUP BY r.id
        ORDER BY r.full_name
        """,
        (org_name,),
    )


def dependency_report(
    conn: sqlite3.Connection,
    org_name: str,
    *,
    dependency_type: str | None = None,
    limit: int = 50,
) -> list[dict[str, Any]]:
    """
    Most used packages across an organization's manifests.

    Args:
        conn: SQLite connection
        org_name: Organization name
        dependency_type: Restrict to one class (e.g. "PRODUCTION")
        limit: Maximum rows

    Returns:
        Rows with package_name, usage_count and version_specs (sorted list)

    Raises:
        ValueError: If dependency_type is invalid
    """
    params: list[Any] = [org_name]
    type_filter = ""
    if dependency_type is not None:
        validate_dependency_type(dependency_type)
        type_filter = "AND d.dependency_type = ?"
        params.append(dependency_type)
    params.append(limit)

    rows = execute_query(
        conn,
        f"""
        SELECT d.package_name,
               COUNT(DISTINCT d.manifest_id) AS usage_count,
               json_group_array(DISTINCT d.version_spec) AS version_specs
        FROM manifest_dependencies d
        JOIN manifests m ON m.id = d.manifest_id
        JOIN repositories r ON r.id = m.repository_id
        JOIN organizations o ON o.id = r.organization_id
        WHERE o.name = ? {type_filter}
        GROUP BY d.package_name
        ORDER BY usage_count DESC, d.package_name
        LIMIT ?
        """,
        tuple(params),
    )
    for row in rows:
        row["version_specs"] = sorted(json.loads(row["version_specs"]))
    return rows


def get_manifest_detail(
    conn: sqlite3.Connection, full_name: str, path: str = "package.json"
) -> dict[str, Any] | None:
    """
    One manifest with its children.

    Returns:
        Manifest row plus dependencies, scripts, keywords and people lists,
        or None if absent
    """
    manifest = execute_one(
        conn,
        """
        SELECT m.* FROM manifests m
        JOIN repositories r ON r.id = m.repository_id
        WHERE r.full_name = ? AND m.path = ?
        """,
        (full_name, path),
    )
    if manifest is None:
        return None

    manifest_id = manifest["id"]
    manifest["dependencies"] = execute_query(
        conn,
        """
        SELECT package_name, version_spec, dependency_type FROM manifest_dependencies
        WHERE manifest_id = ? ORDER BY dependency_type, package_name
        """,
        (manifest_id,),
    )
    manifest["scripts"] = execute_query(
        conn,
        "SELECT name, command FROM manifest_scripts WHERE manifest_id = ? ORDER BY name",
        (manifest_id,),
    )
    manifest["keywords"] = [
        row["keyword"]
        for row in execute_query(
            conn,
            "SELECT keyword FROM manifest_keywords WHERE manifest_id = ? ORDER BY id",
            (manifest_id,),
        )
    ]
    manifest["people"] = execute_query(
        conn,
        "SELECT name, email, url, role FROM manifest_people WHERE manifest_id = ? ORDER BY id",
        (manifest_id,),
    )
    return manifest
