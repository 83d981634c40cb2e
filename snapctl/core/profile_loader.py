"""Profile loading and validation for YAML-based snapctl device profiles."""

from __future__ import annotations

import ipaddress
import json
import logging
import os
from dataclasses import dataclass
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from snapctl.core.errors import ProfileLoadError, ProfileResolutionError, ProfileValidationError
from snapctl.core.model import GbeRegisters, GbeSettings, Profile, SettleIntervals, Timeouts

DEFAULT_PROFILE = "default"
LOGGER = logging.getLogger(__name__)


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


# Keep words such as "off" (a device log level) as strings.
UniqueKeyLoader.yaml_implicit_resolvers = {
    key: list(value) for key, value in yaml.SafeLoader.yaml_implicit_resolvers.items()
}

for first_char, mappings in list(UniqueKeyLoader.yaml_implicit_resolvers.items()):
    UniqueKeyLoader.yaml_implicit_resolvers[first_char] = [
        (tag, regexp)
        for tag, regexp in mappings
        if tag != "tag:yaml.org,2002:bool"
    ]


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise ProfileValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class LoadedProfiles:
    profiles: dict[str, Profile]
    warnings: tuple[str, ...]

    def resolve(self, profile_id: str | None) -> Profile:
        wanted = profile_id or DEFAULT_PROFILE
        profile = self.profiles.get(wanted)
        if profile is None:
            available = ", ".join(sorted(self.profiles)) or "<none>"
            raise ProfileResolutionError(f"Unknown profile '{wanted}'. Available: {available}")
        return profile


def _load_schema_validator() -> Any:
    schema_text = resources.files("snapctl.schemas").joinpath("profile.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def _profile_dirs() -> tuple[Path, Path]:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    xdg_data = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local/share"))
    return xdg_config / "snapctl/profiles", xdg_data / "snapctl/profiles"


def _read_yaml(path: Path | Traversable) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ProfileLoadError(f"Could not read profile file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise ProfileValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise ProfileValidationError(f"Profile file {path} must contain a mapping at root")
    return loaded


def _normalize_ipv4(value: str, *, context: str) -> str:
    try:
        return str(ipaddress.IPv4Address(value.strip()))
    except ValueError as exc:
        raise ProfileValidationError(f"{context} must be an IPv4 address: {exc}") from exc


def _build_profile(doc: dict[str, Any], source: Path | Traversable) -> Profile:
    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise ProfileValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc

    gbe = doc["gbe"]
    registers = gbe.get("registers", {})
    defaults = GbeRegisters()
    timeouts = doc.get("timeouts", {})
    settle = doc.get("settle", {})

    return Profile(
        id=doc["id"],
        name=doc["name"],
        device_log_level=doc.get("device_log_level", "info"),
        timeouts=Timeouts(
            request_s=float(timeouts.get("request_s", Timeouts.request_s)),
            connect_s=float(timeouts.get("connect_s", Timeouts.connect_s)),
        ),
        settle=SettleIntervals(
            gbe_s=float(settle.get("gbe_s", SettleIntervals.gbe_s)),
            upload_s=float(settle.get("upload_s", SettleIntervals.upload_s)),
        ),
        gbe=GbeSettings(
            ip=_normalize_ipv4(gbe["ip"], context=f"{doc['id']}.gbe.ip"),
            port=int(gbe["port"]),
            port_mask=int(gbe.get("port_mask", 0)),
            gateway=_normalize_ipv4(gbe["gateway"], context=f"{doc['id']}.gbe.gateway"),
            dest_ip=_normalize_ipv4(gbe["dest_ip"], context=f"{doc['id']}.gbe.dest_ip"),
            dest_port=int(gbe["dest_port"]),
            registers=GbeRegisters(
                tx_en=registers.get("tx_en", defaults.tx_en),
                tx_rst=registers.get("tx_rst", defaults.tx_rst),
                dest_ip=registers.get("dest_ip", defaults.dest_ip),
                dest_port=registers.get("dest_port", defaults.dest_port),
            ),
        ),
    )


def _iter_packaged_profile_paths() -> list[Traversable]:
    profile_root = resources.files("snapctl.profiles")
    return [item for item in profile_root.iterdir() if item.name.endswith((".yml", ".yaml"))]


def _iter_user_profile_paths() -> list[Path]:
    paths: list[Path] = []
    for directory in _profile_dirs():
        if not directory.exists() or not directory.is_dir():
            continue
        paths.extend(sorted(p for p in directory.iterdir() if p.suffix in {".yml", ".yaml"}))
    return paths


def load_profiles() -> LoadedProfiles:
    profiles: dict[str, Profile] = {}
    warnings: list[str] = []

    for path in sorted(_iter_packaged_profile_paths(), key=lambda p: p.name):
        doc = _read_yaml(path)
        profile = _build_profile(doc, path)
        profiles[profile.id] = profile

    for path in _iter_user_profile_paths():
        doc = _read_yaml(path)
        profile = _build_profile(doc, path)
        if profile.id in profiles:
            warning = f"User profile '{profile.id}' overrides packaged profile"
            LOGGER.warning(warning)
            warnings.append(warning)
        profiles[profile.id] = profile

    return LoadedProfiles(profiles=profiles, warnings=tuple(warnings))
