"""
Tests for package.json extraction and normalization.
"""

import json

import pytest

from pkgsync.core.exceptions import MalformedManifestError
from pkgsync.core.manifest.extractor import (
    content_hash,
    decode_document,
    detect_package_manager,
    detect_project_type,
    extract_manifest,
    normalize_dependency_maps,
    normalize_keywords,
    normalize_license,
    normalize_map,
)
from pkgsync.core.manifest.models import DependencyType, PersonRole
from pkgsync.core.manifest.people import author_text, parse_people, parse_person_string


def _raw(data: object) -> bytes:
    return json.dumps(data).encode("utf-8")


class TestDecodeDocument:
    """Tests for decode_document."""

    def test_valid_object(self) -> None:
        document = decode_document(b'{"name": "web"}', "apps/web/package.json")
        assert document.data == {"name": "web"}
        assert document.path == "apps/web/package.json"

    def test_utf8_bom_is_accepted(self) -> None:
        document = decode_document(b'\xef\xbb\xbf{"name": "bom"}')
        assert document.data["name"] == "bom"

    @pytest.mark.parametrize(
        "raw",
        [
            b"{not json",
            b"[1, 2, 3]",
            b'"just a string"',
            b"\xff\xfe\x00",
            b"",
            b'{"description": "\\ud800"}',
            b'{"nested": ' + b"[" * 200_000 + b"]" * 200_000 + b"}",
        ],
        ids=["syntax", "array", "string", "not-utf8", "empty", "lone-surrogate", "deep-nesting"],
    )
    def test_malformed(self, raw: bytes) -> None:
        with pytest.raises(MalformedManifestError):
            decode_document(raw)

    def test_lone_surrogate_fails_extraction(self) -> None:
        """Test text that cannot be stored or hashed is reported as malformed."""
        with pytest.raises(MalformedManifestError, match="not valid Unicode"):
            extract_manifest(b'{"name": "web", "description": "\\ud800"}')

    def test_error_context(self) -> None:
        with pytest.raises(MalformedManifestError) as exc_info:
            decode_document(b'{"name": }', "pkg/package.json")
        assert exc_info.value.context["path"] == "pkg/package.json"
        assert "not valid JSON" in str(exc_info.value)


class TestExtractManifest:
    """End-to-end extraction."""

    def test_minimal_defaults(self) -> None:
        """Test an empty object yields every default."""
        record = extract_manifest(b"{}")

        assert record.name is None
        assert record.version == "0.0.0"
        assert record.description is None
        assert record.license is None
        assert record.is_private is False
        assert record.project_type == "library"
        assert record.package_manager == "npm"
        assert record.dependencies == []
        assert record.scripts == []
        assert record.keywords == []
        assert record.people == []
        assert record.full_content == {}

    def test_full_manifest(self) -> None:
        data = {
            "name": "  @acme/web  ",
            "version": "1.2.3",
            "description": "Web app",
            "author": "Jane Doe <jane@acme.dev> (https://jane.dev)",
            "license": "MIT",
            "homepage": "https://acme.dev",
            "main": "dist/index.js",
            "module": "dist/index.mjs",
            "typings": "dist/index.d.ts",
            "private": True,
            "packageManager": "pnpm@8.6.0+sha256.abc",
            "dependencies": {"react": "^18.2.0", "lodash": "4.17.21"},
            "devDependencies": {"typescript": "~5.3.0"},
            "peerDependencies": {"react-dom": ">=18"},
            "scripts": {"build": "tsc", "test": "vitest"},
            "keywords": ["ui", "web", "ui", "  ", 7],
            "contributors": ["Bob <bob@acme.dev>", {"name": "Eve", "web": "https://eve.dev"}],
        }
        record = extract_manifest(_raw(data))

        assert record.name == "@acme/web"
        assert record.version == "1.2.3"
        assert record.author == "Jane Doe <jane@acme.dev> (https://jane.dev)"
        assert record.types_file == "dist/index.d.ts"
        assert record.is_private is True
        assert record.project_type == "react"
        assert (record.package_manager, record.package_manager_version) == ("pnpm", "8.6.0")
        assert record.total_dependencies == 4
        assert record.total_scripts == 2
        assert record.scripts_map() == {"build": "tsc", "test": "vitest"}
        assert record.keywords == ["ui", "web"]
        assert [p.role for p in record.people] == [
            PersonRole.AUTHOR,
            PersonRole.CONTRIBUTOR,
            PersonRole.CONTRIBUTOR,
        ]
        assert record.people[2].url == "https://eve.dev"
        assert record.full_content == data

    def test_dependency_classes(self) -> None:
        record = extract_manifest(
            _raw({"dependencies": {"a": "1"}, "optionalDependencies": {"b": "2"}})
        )
        triples = {(d.name, d.version_spec, d.dependency_type) for d in record.dependencies}
        assert triples == {
            ("a", "1", DependencyType.PRODUCTION),
            ("b", "2", DependencyType.OPTIONAL),
        }

    def test_wrong_types_use_defaults(self) -> None:
        """Test fields of the wrong JSON type fall back instead of failing."""
        record = extract_manifest(
            _raw(
                {
                    "name": 42,
                    "version": ["1"],
                    "dependencies": ["react"],
                    "scripts": "npm test",
                    "keywords": "ui",
                    "browser": {"./a.js": False},
                }
            )
        )
        assert record.name is None
        assert record.version == "0.0.0"
        assert record.dependencies == []
        assert record.scripts == []
        assert record.keywords == []
        assert record.browser_file is None

    def test_content_hash_ignores_key_order(self) -> None:
        first = extract_manifest(b'{"name": "a", "version": "1.0.0"}')
        second = extract_manifest(b'{\n  "version": "1.0.0",\n  "name": "a"\n}')
        changed = extract_manifest(b'{"name": "a", "version": "1.0.1"}')

        assert first.content_hash == second.content_hash
        assert first.content_hash != changed.content_hash
        assert first.content_hash == content_hash({"name": "a", "version": "1.0.0"})

    def test_path_is_kept(self) -> None:
        record = extract_manifest(b'{"name": "ui"}', "packages/ui/package.json")
        assert record.path == "packages/ui/package.json"


class TestNormalizers:
    """Field-level normalization helpers."""

    def test_normalize_map_stringifies(self) -> None:
        assert normalize_map({"a": "1", "b": 2, "c": None}) == {"a": "1", "b": "2", "c": "null"}
        assert normalize_map("nope") == {}

    def test_bundled_array_takes_production_version(self) -> None:
        maps = normalize_dependency_maps(
            {"dependencies": {"left-pad": "^1.3.0"}, "bundledDependencies": ["left-pad", "extra"]}
        )
        assert maps[DependencyType.BUNDLED] == {"left-pad": "^1.3.0", "extra": "*"}

    def test_bundle_alias_merges_first_wins(self) -> None:
        maps = normalize_dependency_maps(
            {"bundledDependencies": {"x": "1"}, "bundleDependencies": {"x": "2", "y": "3"}}
        )
        assert maps[DependencyType.BUNDLED] == {"x": "1", "y": "3"}

    def test_keywords_dedupe_in_order(self) -> None:
        assert normalize_keywords([" b ", "a", "b", None]) == ["b", "a"]

    def test_license_forms(self) -> None:
        assert normalize_license({"license": " MIT "}) == ("MIT", None)
        assert normalize_license(
            {"license": {"type": "BSD", "url": "https://x/bsd"}}
        ) == ("BSD", "https://x/bsd")
        assert normalize_license(
            {"licenses": [{"type": "GPL-2.0", "url": "https://x/gpl"}, {"type": "MIT"}]}
        ) == ("GPL-2.0", "https://x/gpl")
        assert normalize_license({}) == (None, None)


class TestDetection:
    """Package manager and project type detection."""

    @pytest.mark.parametrize(
        ("field", "expected"),
        [
            (None, ("npm", None)),
            ("yarn@4.0.2", ("yarn", "4.0.2")),
            ("pnpm@8.6.0+sha512.deadbeef", ("pnpm", "8.6.0")),
            ("bun", ("bun", None)),
        ],
    )
    def test_package_manager(self, field: str | None, expected: tuple) -> None:
        data = {} if field is None else {"packageManager": field}
        assert detect_package_manager(data) == expected

    def test_bin_means_cli(self) -> None:
        data = {"bin": {"tool": "cli.js"}, "dependencies": {"react": "18"}}
        maps = normalize_dependency_maps(data)
        assert detect_project_type(data, maps) == "cli"

    def test_framework_order(self) -> None:
        data = {"dependencies": {"react": "18", "next": "14"}}
        assert detect_project_type(data, normalize_dependency_maps(data)) == "nextjs"

    def test_private_without_framework(self) -> None:
        assert detect_project_type({"private": True}, {}) == "application"
        assert detect_project_type({}, {}) == "library"


class TestPeople:
    """Person parsing."""

    def test_full_string(self) -> None:
        person = parse_person_string("Jane Doe <jane@x.com> (https://x.com)", PersonRole.AUTHOR)
        assert person is not None
        assert (person.name, person.email, person.url) == ("Jane Doe", "jane@x.com", "https://x.com")

    def test_name_only(self) -> None:
        person = parse_person_string("  Jane   Doe ", PersonRole.MAINTAINER)
        assert person is not None
        assert person.name == "Jane Doe"
        assert person.email is None
        assert person.role is PersonRole.MAINTAINER

    def test_no_name_is_dropped(self) -> None:
        assert parse_person_string("<jane@x.com>", PersonRole.AUTHOR) is None

    def test_single_author_and_bare_entries(self) -> None:
        people = parse_people(
            {
                "author": {"name": "Ann", "mail": "ann@x.com"},
                "contributors": "Bob",
                "maintainers": [{"email": "noname@x.com"}, "Cy"],
            }
        )
        assert [(p.name, p.role) for p in people] == [
            ("Ann", PersonRole.AUTHOR),
            ("Bob", PersonRole.CONTRIBUTOR),
            ("Cy", PersonRole.MAINTAINER),
        ]
        assert people[0].email == "ann@x.com"

    def test_author_text(self) -> None:
        assert author_text({"name": "Ann", "email": "a@x.com"}) == "Ann <a@x.com>"
        assert author_text("  Ann  ") == "Ann"
        assert author_text(3) is None
