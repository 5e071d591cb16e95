"""
package.json extraction and normalization.

Usage:
    from pkgsync.core.manifest import extract_manifest

    record = extract_manifest(raw_bytes, path="packages/ui/package.json")
    for dep in record.dependencies:
        print(dep.name, dep.version_spec, dep.dependency_type.value)
"""

from pkgsync.core.manifest.extractor import content_hash, decode_document, extract_manifest
from pkgsync.core.manifest.models import (
    Dependency,
    DependencyType,
    ManifestDocument,
    ManifestRecord,
    Person,
    PersonRole,
    Script,
)
from pkgsync.core.manifest.people import parse_person, parse_person_string

__all__ = [
    "Dependency",
    "DependencyType",
    "ManifestDocument",
    "ManifestRecord",
    "Person",
    "PersonRole",
    "Script",
    "content_hash",
    "decode_document",
    "extract_manifest",
    "parse_person",
    "parse_person_string",
]
