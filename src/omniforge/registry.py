"""
Phase metadata registry.

Loads the phase catalog once and serves read-only lookups for the
orchestrator. The catalog is a YAML mapping of integer phase ids to
phase entries::

    phases:
      0:
        name: Project Foundation
        description: Initialize Next.js, TypeScript, project structure
        enabled: true
        timeout: 300
        prereq: strict
        docker_required: true
        deps: "git:https://git-scm.com,node:https://nodejs.org"
        packages: [PKG_NEXT, "PKG_TSX|enabled:false"]
        scripts:
          - foundation/init-nextjs.sh

Discovery probes ids ``0..max_phase_id``; ids with no entry are simply
absent. Fields that are missing or cannot be parsed fall back to their
defaults (``enabled=true``, ``timeout=600``, ``prereq=warn``) instead of
raising, so a partially specified catalog still runs.

Usage::

    from omniforge.registry import PhaseRegistry

    registry = PhaseRegistry.load("omni.phases.yaml")
    for phase_id in registry.discover():
        print(registry.get_name(phase_id), registry.get_scripts(phase_id))
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field

from omniforge.errors import CatalogError, MetadataMalformedError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 600
DEFAULT_MAX_PHASE_ID = 99

_TRUE_VALUES = {"true", "1", "yes", "on"}
_FALSE_VALUES = {"false", "0", "no", "off"}


class PrereqMode(str, Enum):
    """How missing dependencies affect a phase."""

    STRICT = "strict"
    WARN = "warn"


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class DependencySpec(BaseModel):
    """A command that must resolve on PATH, plus an install hint."""

    model_config = ConfigDict(frozen=True)

    command: str
    hint: str = ""

    @property
    def is_builtin(self) -> bool:
        return self.hint == "builtin"


class PackageSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    enabled: bool = True


class PhaseMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""


class PhaseConfig(BaseModel):
    """Execution settings for a phase."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    timeout_seconds: int = Field(default=DEFAULT_TIMEOUT_SECONDS, ge=1)
    prereq_mode: PrereqMode = PrereqMode.WARN
    dependency_specs: Tuple[DependencySpec, ...] = ()
    docker_required: bool = False


class Phase(BaseModel):
    """An ordered stage of the bootstrap process."""

    model_config = ConfigDict(frozen=True)

    id: int
    metadata: PhaseMetadata
    config: PhaseConfig = Field(default_factory=PhaseConfig)
    scripts: Tuple[str, ...] = ()
    packages: Tuple[PackageSpec, ...] = ()

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def enabled(self) -> bool:
        return self.config.enabled


# ---------------------------------------------------------------------------
# Field parsers
# ---------------------------------------------------------------------------


def _parse_bool(phase_id: int, field: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise MetadataMalformedError(phase_id, field, value)


def _parse_timeout(phase_id: int, value: Any) -> int:
    try:
        timeout = int(str(value).strip())
    except (TypeError, ValueError):
        raise MetadataMalformedError(phase_id, "timeout", value) from None
    if timeout < 1:
        raise MetadataMalformedError(phase_id, "timeout", value)
    return timeout


def _parse_prereq(phase_id: int, value: Any) -> PrereqMode:
    try:
        return PrereqMode(str(value).strip().lower())
    except ValueError:
        raise MetadataMalformedError(phase_id, "prereq", value) from None


def parse_dependency_specs(value: Any) -> Tuple[DependencySpec, ...]:
    """
    Parse dependency specs from either a list or the compact string form.

    The compact form is ``"cmd:hint,cmd:hint"``; the hint may itself contain
    colons (URLs), so only the first colon separates command from hint.
    """
    if value is None or value == "":
        return ()

    specs: List[DependencySpec] = []
    if isinstance(value, str):
        for item in value.split(","):
            item = item.strip()
            if not item:
                continue
            command, _, hint = item.partition(":")
            if command.strip():
                specs.append(DependencySpec(command=command.strip(), hint=hint.strip()))
        return tuple(specs)

    if isinstance(value, (list, tuple)):
        for item in value:
            if isinstance(item, Mapping):
                command = str(item.get("command", "")).strip()
                if command:
                    specs.append(DependencySpec(command=command, hint=str(item.get("hint", "")).strip()))
            elif isinstance(item, str):
                specs.extend(parse_dependency_specs(item))
            else:
                raise ValueError(f"unsupported dependency entry: {item!r}")
        return tuple(specs)

    raise ValueError(f"unsupported dependency value: {value!r}")


def parse_package_spec(value: Any) -> Optional[PackageSpec]:
    """Parse ``"PKG_NAME"``, ``"PKG_NAME|enabled:false"`` or a mapping."""
    if isinstance(value, Mapping):
        name = str(value.get("name", "")).strip()
        if not name:
            return None
        enabled = value.get("enabled", True)
        return PackageSpec(name=name, enabled=str(enabled).strip().lower() not in _FALSE_VALUES)

    text = str(value).strip()
    if not text:
        return None
    name, *attrs = text.split("|")
    enabled = True
    for attr in attrs:
        key, _, raw = attr.partition(":")
        if key.strip() == "enabled":
            enabled = raw.strip().lower() not in _FALSE_VALUES
    return PackageSpec(name=name.strip(), enabled=enabled)


def _parse_scripts(value: Any) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        items = value.splitlines()
    elif isinstance(value, (list, tuple)):
        items = [str(v) for v in value if v is not None]
    else:
        raise ValueError(f"unsupported scripts value: {value!r}")
    return tuple(s.strip() for s in items if s.strip())


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class PhaseRegistry:
    """
    Immutable catalog of phases keyed by integer id.

    Build with ``PhaseRegistry.load(path)`` or
    ``PhaseRegistry.from_mapping(data)``.
    """

    def __init__(
        self,
        phases: Mapping[int, Phase],
        max_phase_id: int = DEFAULT_MAX_PHASE_ID,
    ) -> None:
        self._phases: Dict[int, Phase] = dict(phases)
        self.max_phase_id = max_phase_id

    # -- construction -----------------------------------------------------

    @classmethod
    def load(
        cls,
        path: Union[str, Path],
        max_phase_id: int = DEFAULT_MAX_PHASE_ID,
        default_timeout: int = DEFAULT_TIMEOUT_SECONDS,
    ) -> "PhaseRegistry":
        """Load a registry from a YAML catalog file."""
        path = Path(path)
        if not path.exists():
            raise CatalogError(f"Phase catalog not found: {path}")
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise CatalogError(f"Phase catalog is not valid YAML: {path}: {e}") from e

        if data is None:
            data = {}
        if not isinstance(data, Mapping):
            raise CatalogError(f"Phase catalog must be a mapping: {path}")

        logger.debug("Loading phase catalog from %s", path)
        return cls.from_mapping(data, max_phase_id=max_phase_id, default_timeout=default_timeout)

    @classmethod
    def from_mapping(
        cls,
        data: Mapping[str, Any],
        max_phase_id: int = DEFAULT_MAX_PHASE_ID,
        default_timeout: int = DEFAULT_TIMEOUT_SECONDS,
    ) -> "PhaseRegistry":
        """Build a registry from an already-parsed catalog mapping."""
        raw_phases = data.get("phases", data)
        if not isinstance(raw_phases, Mapping):
            raise CatalogError("'phases' must be a mapping of phase id to entry")

        phases: Dict[int, Phase] = {}
        for raw_id, entry in raw_phases.items():
            try:
                phase_id = int(raw_id)
            except (TypeError, ValueError):
                logger.warning("Ignoring catalog entry with non-integer id: %r", raw_id)
                continue
            phase = _build_phase(phase_id, entry, default_timeout)
            if phase is not None:
                phases[phase_id] = phase

        return cls(phases, max_phase_id=max_phase_id)

    # -- lookups ----------------------------------------------------------

    def discover(self) -> List[int]:
        """Return phase ids found in ``0..max_phase_id`` in ascending order."""
        return [i for i in range(self.max_phase_id + 1) if i in self._phases]

    def get_phase(self, phase_id: int) -> Optional[Phase]:
        return self._phases.get(phase_id)

    def get_metadata(self, phase_id: int) -> Optional[PhaseMetadata]:
        phase = self._phases.get(phase_id)
        return phase.metadata if phase else None

    def get_config(self, phase_id: int) -> Optional[PhaseConfig]:
        phase = self._phases.get(phase_id)
        return phase.config if phase else None

    def get_scripts(self, phase_id: int) -> List[str]:
        phase = self._phases.get(phase_id)
        return list(phase.scripts) if phase else []

    def get_packages(self, phase_id: int) -> List[PackageSpec]:
        phase = self._phases.get(phase_id)
        return list(phase.packages) if phase else []

    def get_name(self, phase_id: int) -> str:
        metadata = self.get_metadata(phase_id)
        if metadata and metadata.name:
            return metadata.name
        return f"Phase {phase_id}"

    def is_enabled(self, phase_id: int) -> bool:
        config = self.get_config(phase_id)
        return config.enabled if config else True

    def __contains__(self, phase_id: object) -> bool:
        return phase_id in self._phases

    def __len__(self) -> int:
        return len(self._phases)

    # -- rendering --------------------------------------------------------

    def list_all(self) -> str:
        """Render every discovered phase with its scripts."""
        lines = ["", "BOOTSTRAP PHASES", "================", ""]
        for phase_id in self.discover():
            phase = self._phases[phase_id]
            state = "enabled" if phase.enabled else "DISABLED"
            lines.append(f"Phase {phase_id}: {self.get_name(phase_id)} [{state}]")
            if phase.metadata.description:
                lines.append(f"  Description: {phase.metadata.description}")

            scripts = phase.scripts if phase.enabled else ()
            for script in scripts:
                lines.append(f"    - {script}")
            lines.append(f"  Scripts: {len(scripts)}")
            lines.append("")
        return "\n".join(lines)


def _build_phase(phase_id: int, entry: Any, default_timeout: int) -> Optional[Phase]:
    """Build one phase, falling back to defaults for malformed fields."""
    if not isinstance(entry, Mapping):
        logger.warning("Phase %d has no metadata mapping; not discovered", phase_id)
        return None

    def lenient(field: str, parse, default):
        if field not in entry or entry[field] is None:
            return default
        try:
            return parse(entry[field])
        except (MetadataMalformedError, ValueError) as e:
            logger.warning("%s; using default %r", e, default)
            return default

    name = str(entry.get("name") or f"Phase {phase_id}")
    description = str(entry.get("description") or "")

    config = PhaseConfig(
        enabled=lenient("enabled", lambda v: _parse_bool(phase_id, "enabled", v), True),
        timeout_seconds=lenient("timeout", lambda v: _parse_timeout(phase_id, v), default_timeout),
        prereq_mode=lenient("prereq", lambda v: _parse_prereq(phase_id, v), PrereqMode.WARN),
        dependency_specs=lenient("deps", parse_dependency_specs, ()),
        docker_required=lenient(
            "docker_required", lambda v: _parse_bool(phase_id, "docker_required", v), False
        ),
    )

    packages: List[PackageSpec] = []
    raw_packages = entry.get("packages") or []
    if isinstance(raw_packages, str):
        raw_packages = raw_packages.splitlines()
    if isinstance(raw_packages, (list, tuple)):
        for item in raw_packages:
            spec = parse_package_spec(item)
            if spec is not None:
                packages.append(spec)
    else:
        logger.warning("Phase %d: ignoring malformed packages value %r", phase_id, raw_packages)

    return Phase(
        id=phase_id,
        metadata=PhaseMetadata(name=name, description=description),
        config=config,
        scripts=lenient("scripts", _parse_scripts, ()),
        packages=tuple(packages),
    )
