"""
Manifest extraction: raw package.json bytes to a ManifestRecord.

Each field goes through an explicit normalization function with a fixed
default policy:

- strings are trimmed; blank or non-string values become None
- version defaults to "0.0.0"
- maps that are not JSON objects become {}; non-string values are
  stringified
- lists that are not JSON arrays become []
"""

import hashlib
import json
import logging
from typing import Any

from pkgsync.core.exceptions import MalformedManifestError
from pkgsync.core.manifest.models import (
    Dependency,
    DependencyType,
    ManifestDocument,
    ManifestRecord,
    Script,
)
from pkgsync.core.manifest.people import author_text, parse_people

logger = logging.getLogger(__name__)

DEPENDENCY_FIELDS: list[tuple[str, DependencyType]] = [
    ("dependencies", DependencyType.PRODUCTION),
    ("devDependencies", DependencyType.DEVELOPMENT),
    ("peerDependencies", DependencyType.PEER),
    ("optionalDependencies", DependencyType.OPTIONAL),
    ("bundledDependencies", DependencyType.BUNDLED),
    ("bundleDependencies", DependencyType.BUNDLED),
]

# Checked in order; first match wins
FRAMEWORK_PROJECT_TYPES: list[tuple[str, str]] = [
    ("next", "nextjs"),
    ("@angular/core", "angular"),
    ("vue", "vue"),
    ("svelte", "svelte"),
    ("react", "react"),
    ("express", "node-server"),
    ("fastify", "node-server"),
    ("koa", "node-server"),
]

KNOWN_PACKAGE_MANAGERS = ("npm", "yarn", "pnpm", "bun")


def decode_document(raw: bytes, path: str = "package.json") -> ManifestDocument:
    """
    Decode bytes into a ManifestDocument.

    Raises:
        MalformedManifestError: If the bytes are not UTF-8 JSON describing an
            object, nest too deeply to parse, or hold strings that cannot be
            re-encoded as UTF-8 (lone surrogate escapes such as "\\ud800")
    """
    try:
        text = raw.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise MalformedManifestError(
            f"{path} is not valid UTF-8", path=path, position=e.start
        ) from e

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedManifestError(
            f"{path} is not valid JSON: {e.msg} (line {e.lineno})",
            path=path,
            position=e.pos,
        ) from e
    except RecursionError as e:
        raise MalformedManifestError(f"{path} is nested too deeply", path=path) from e

    if not isinstance(data, dict):
        raise MalformedManifestError(
            f"{path} must contain a JSON object, got {type(data).__name__}", path=path
        )

    try:
        json.dumps(data, ensure_ascii=False).encode("utf-8")
    except UnicodeEncodeError as e:
        raise MalformedManifestError(
            f"{path} contains text that is not valid Unicode", path=path
        ) from e
    except RecursionError as e:
        raise MalformedManifestError(f"{path} is nested too deeply", path=path) from e

    return ManifestDocument(path=path, data=data, raw=raw)


def content_hash(data: dict[str, Any]) -> str:
    """SHA-256 over canonical JSON (sorted keys, compact separators)."""
    canonical = json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def normalize_string(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def _stringify(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


def normalize_map(value: Any) -> dict[str, str]:
    """Return a str -> str map; anything that is not an object yields {}."""
    if not isinstance(value, dict):
        return {}
    return {str(k): _stringify(v) for k, v in value.items()}


def normalize_version(value: Any) -> str:
    return normalize_string(value) or "0.0.0"


def normalize_dependency_maps(data: dict[str, Any]) -> dict[DependencyType, dict[str, str]]:
    """
    Collect the dependency maps per class.

    Bundled dependencies are usually an array of names; their version is
    taken from the production map when present, otherwise "*".
    """
    production = normalize_map(data.get("dependencies"))
    maps: dict[DependencyType, dict[str, str]] = {}

    for field, dep_type in DEPENDENCY_FIELDS:
        value = data.get(field)
        if value is None:
            continue
        if dep_type is DependencyType.BUNDLED and isinstance(value, list):
            entries = {
                name.strip(): production.get(name.strip(), "*")
                for name in value
                if isinstance(name, str) and name.strip()
            }
        else:
            entries = normalize_map(value)
        if entries:
            merged = maps.setdefault(dep_type, {})
            for name, spec in entries.items():
                merged.setdefault(name, spec)

    return maps


def flatten_dependencies(maps: dict[DependencyType, dict[str, str]]) -> list[Dependency]:
    """Flatten per-class maps into (name, spec, class) tuples."""
    return [
        Dependency(name=name, version_spec=spec, dependency_type=dep_type)
        for dep_type, entries in maps.items()
        for name, spec in entries.items()
    ]


def normalize_scripts(value: Any) -> list[Script]:
    return [Script(name=name, command=command) for name, command in normalize_map(value).items()]


def normalize_keywords(value: Any) -> list[str]:
    """Trimmed, de-duplicated string keywords in original order."""
    if not isinstance(value, list):
        return []
    seen: dict[str, None] = {}
    for item in value:
        keyword = normalize_string(item)
        if keyword is not None:
            seen.setdefault(keyword, None)
    return list(seen)


def normalize_license(data: dict[str, Any]) -> tuple[str | None, str | None]:
    """
    Resolve (license, license_url).

    Accepts the SPDX string form, the legacy {type, url} object, and the
    legacy ``licenses`` array (first entry wins).
    """
    value = data.get("license")
    if isinstance(value, str):
        return normalize_string(value), None
    if isinstance(value, dict):
        return normalize_string(value.get("type")), normalize_string(value.get("url"))

    legacy = data.get("licenses")
    if isinstance(legacy, list) and legacy:
        first = legacy[0]
        if isinstance(first, dict):
            return normalize_string(first.get("type")), normalize_string(first.get("url"))
        return normalize_string(first), None

    return None, None


def normalize_homepage(data: dict[str, Any]) -> str | None:
    return normalize_string(data.get("homepage"))


def normalize_private(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return False


def detect_package_manager(data: dict[str, Any]) -> tuple[str, str | None]:
    """
    Read the ``packageManager`` field ("pnpm@8.6.0+sha...").

    Returns:
        (manager, version); ("npm", None) when the field is absent
    """
    value = normalize_string(data.get("packageManager"))
    if value is None:
        return "npm", None

    manager, _, version = value.partition("@")
    manager = manager.strip().lower()
    version = version.split("+", 1)[0].strip() or None
    if manager not in KNOWN_PACKAGE_MANAGERS:
        logger.debug(f"Unknown package manager '{manager}' in packageManager field")
    return manager or "npm", version


def detect_project_type(data: dict[str, Any], maps: dict[DependencyType, dict[str, str]]) -> str:
    """
    Classify the project from its manifest.

    CLIs declare ``bin``. Otherwise the first framework found in the
    production, development or peer dependencies decides. Remaining
    packages are "application" when private, else "library".
    """
    if data.get("bin"):
        return "cli"

    declared: set[str] = set()
    for dep_type in (DependencyType.PRODUCTION, DependencyType.DEVELOPMENT, DependencyType.PEER):
        declared.update(maps.get(dep_type, {}))

    for package, project_type in FRAMEWORK_PROJECT_TYPES:
        if package in declared:
            return project_type

    return "application" if normalize_private(data.get("private")) else "library"


def normalize_document(document: ManifestDocument) -> ManifestRecord:
    """Normalize a decoded document into a ManifestRecord."""
    data = document.data
    maps = normalize_dependency_maps(data)
    license_name, license_url = normalize_license(data)
    manager, manager_version = detect_package_manager(data)
    browser = data.get("browser")

    return ManifestRecord(
        path=document.path,
        name=normalize_string(data.get("name")),
        version=normalize_version(data.get("version")),
        description=normalize_string(data.get("description")),
        author=author_text(data.get("author")),
        license=license_name,
        license_url=license_url,
        homepage=normalize_homepage(data),
        main_file=normalize_string(data.get("main")),
        module_file=normalize_string(data.get("module")),
        types_file=normalize_string(data.get("types")) or normalize_string(data.get("typings")),
        browser_file=normalize_string(browser) if isinstance(browser, str) else None,
        is_private=normalize_private(data.get("private")),
        project_type=detect_project_type(data, maps),
        package_manager=manager,
        package_manager_version=manager_version,
        dependency_maps=maps,
        dependencies=flatten_dependencies(maps),
        scripts=normalize_scripts(data.get("scripts")),
        keywords=normalize_keywords(data.get("keywords")),
        people=parse_people(data),
        full_content=data,
        content_hash=content_hash(data),
    )


def extract_manifest(raw: bytes, path: str = "package.json") -> ManifestRecord:
    """
    Decode, parse and normalize manifest bytes.

    Args:
        raw: File bytes as fetched
        path: Path of the manifest inside its repository

    Returns:
        ManifestRecord

    Raises:
        MalformedManifestError: On decode or parse failure
    """
    return normalize_document(decode_document(raw, path))
