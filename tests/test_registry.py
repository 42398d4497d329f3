"""
Tests for the phase metadata registry.
"""

import pytest

from omniforge.errors import CatalogError
from omniforge.registry import (
    DependencySpec,
    PackageSpec,
    PhaseRegistry,
    PrereqMode,
    parse_dependency_specs,
    parse_package_spec,
)


@pytest.fixture
def catalog_file(tmp_path):
    path = tmp_path / "omni.phases.yaml"
    path.write_text(
        """
phases:
  2:
    name: Core Features
    timeout: 900
    prereq: warn
    deps: "openssl:builtin"
    scripts:
      - auth/authjs-setup.sh
  0:
    name: Project Foundation
    description: Initialize Next.js
    timeout: 300
    prereq: strict
    docker_required: true
    deps:
      - {command: git, hint: "https://git-scm.com"}
    packages:
      - PKG_NEXT
      - "PKG_TSX|enabled:false"
    scripts:
      - foundation/init-nextjs.sh
      - "  foundation/init-typescript.sh  "
      - ""
"""
    )
    return path


class TestDiscovery:
    """Tests for phase discovery order."""

    def test_discover_is_ascending(self, catalog_file):
        registry = PhaseRegistry.load(catalog_file)
        assert registry.discover() == [0, 2]

    def test_gaps_are_absent_not_errors(self, catalog_file):
        registry = PhaseRegistry.load(catalog_file)
        assert registry.get_metadata(1) is None
        assert registry.get_config(1) is None
        assert registry.get_scripts(1) == []
        assert registry.get_packages(1) == []

    def test_probe_range_is_bounded(self):
        registry = PhaseRegistry.from_mapping(
            {"phases": {0: {"name": "a"}, 150: {"name": "far"}}},
            max_phase_id=99,
        )
        assert registry.discover() == [0]

    def test_non_mapping_entry_is_not_discovered(self):
        registry = PhaseRegistry.from_mapping({"phases": {0: "just a string", 1: {"name": "ok"}}})
        assert registry.discover() == [1]


class TestLookups:
    """Tests for metadata, config, scripts and packages."""

    def test_metadata(self, catalog_file):
        registry = PhaseRegistry.load(catalog_file)
        meta = registry.get_metadata(0)
        assert meta.name == "Project Foundation"
        assert meta.description == "Initialize Next.js"

    def test_config(self, catalog_file):
        registry = PhaseRegistry.load(catalog_file)
        config = registry.get_config(0)
        assert config.enabled is True
        assert config.timeout_seconds == 300
        assert config.prereq_mode == PrereqMode.STRICT
        assert config.docker_required is True
        assert config.dependency_specs == (DependencySpec(command="git", hint="https://git-scm.com"),)

    def test_scripts_trimmed_in_order(self, catalog_file):
        registry = PhaseRegistry.load(catalog_file)
        assert registry.get_scripts(0) == [
            "foundation/init-nextjs.sh",
            "foundation/init-typescript.sh",
        ]

    def test_packages(self, catalog_file):
        registry = PhaseRegistry.load(catalog_file)
        assert registry.get_packages(0) == [
            PackageSpec(name="PKG_NEXT", enabled=True),
            PackageSpec(name="PKG_TSX", enabled=False),
        ]

    def test_compact_dependency_string(self, catalog_file):
        registry = PhaseRegistry.load(catalog_file)
        specs = registry.get_config(2).dependency_specs
        assert specs == (DependencySpec(command="openssl", hint="builtin"),)
        assert specs[0].is_builtin


class TestDefaults:
    """Malformed or missing fields fall back to defaults."""

    def test_missing_fields_use_defaults(self):
        registry = PhaseRegistry.from_mapping({"phases": {0: {}}})
        config = registry.get_config(0)
        assert config.enabled is True
        assert config.timeout_seconds == 600
        assert config.prereq_mode == PrereqMode.WARN
        assert config.dependency_specs == ()
        assert registry.get_name(0) == "Phase 0"

    def test_malformed_fields_use_defaults(self, caplog):
        registry = PhaseRegistry.from_mapping(
            {
                "phases": {
                    0: {
                        "name": "Broken",
                        "enabled": "maybe",
                        "timeout": "ten minutes",
                        "prereq": "sometimes",
                        "scripts": 42,
                    }
                }
            }
        )
        config = registry.get_config(0)
        assert config.enabled is True
        assert config.timeout_seconds == 600
        assert config.prereq_mode == PrereqMode.WARN
        assert registry.get_scripts(0) == []
        assert "malformed value for 'timeout'" in caplog.text

    def test_configured_default_timeout(self):
        registry = PhaseRegistry.from_mapping({"phases": {0: {"name": "x"}}}, default_timeout=120)
        assert registry.get_config(0).timeout_seconds == 120

    def test_string_booleans(self):
        registry = PhaseRegistry.from_mapping({"phases": {0: {"enabled": "false"}}})
        assert registry.is_enabled(0) is False


class TestLoading:
    """Catalog file handling."""

    def test_missing_catalog_raises(self, tmp_path):
        with pytest.raises(CatalogError):
            PhaseRegistry.load(tmp_path / "nope.yaml")

    def test_non_mapping_catalog_raises(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- 1\n- 2\n")
        with pytest.raises(CatalogError):
            PhaseRegistry.load(path)

    def test_empty_catalog_has_no_phases(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert PhaseRegistry.load(path).discover() == []

    def test_sample_catalog_loads(self):
        from pathlib import Path

        sample = Path(__file__).resolve().parent.parent / "omni.phases.yaml"
        registry = PhaseRegistry.load(sample)
        assert registry.discover() == [0, 1, 2, 3, 4, 5]
        assert registry.is_enabled(5) is False
        assert registry.get_config(1).prereq_mode == PrereqMode.STRICT


class TestParsers:
    def test_dependency_hint_keeps_url_colons(self):
        specs = parse_dependency_specs("git:https://git-scm.com, node:https://nodejs.org")
        assert [s.command for s in specs] == ["git", "node"]
        assert specs[1].hint == "https://nodejs.org"

    def test_empty_dependency_string(self):
        assert parse_dependency_specs("") == ()

    def test_package_mapping(self):
        assert parse_package_spec({"name": "PKG_ZOD", "enabled": False}) == PackageSpec(
            name="PKG_ZOD", enabled=False
        )

    def test_blank_package(self):
        assert parse_package_spec("   ") is None


class TestListAll:
    def test_lists_enabled_and_disabled(self):
        registry = PhaseRegistry.from_mapping(
            {
                "phases": {
                    0: {"name": "Foundation", "description": "Base", "scripts": ["a.sh", "b.sh"]},
                    1: {"name": "Extra", "enabled": False, "scripts": ["c.sh"]},
                }
            }
        )
        text = registry.list_all()
        assert "Phase 0: Foundation [enabled]" in text
        assert "  Description: Base" in text
        assert "    - a.sh" in text
        assert "  Scripts: 2" in text
        assert "Phase 1: Extra [DISABLED]" in text
        assert "    - c.sh" not in text

    def test_membership_and_size(self, catalog_file):
        registry = PhaseRegistry.load(catalog_file)
        assert 0 in registry
        assert 1 not in registry
        assert len(registry) == 2
