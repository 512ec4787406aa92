from __future__ import annotations

import codecs
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import yaml


CONFIG_SECTION = "c3d_stream"
ANALOG_FORMATS = ("SIGNED", "UNSIGNED")


@dataclass(frozen=True)
class ReaderConfig:
    """
    Decoder configuration.

    encoding:
      Codec for group/parameter names, descriptions and CHAR parameter data.
    strict_groups:
      - True: a parameter whose group id is never declared aborts decoding.
      - False: such parameters are dropped with a warning.
    analog_format:
      Force "SIGNED" or "UNSIGNED" integer analog words. None follows ANALOG:FORMAT.
    check_trailing_data:
      Warn when at least one whole block of data remains after the last declared frame.
    """
    encoding: str = "latin-1"
    strict_groups: bool = True
    analog_format: Optional[str] = None
    check_trailing_data: bool = True

    def __post_init__(self) -> None:
        try:
            codecs.lookup(self.encoding)
        except LookupError as exc:
            raise ValueError(f"Unknown text encoding: {self.encoding!r}") from exc
        if self.analog_format is not None and self.analog_format not in ANALOG_FORMATS:
            raise ValueError(f"analog_format must be one of {ANALOG_FORMATS} or None. Got {self.analog_format!r}")


def _as_bool(section: dict, key: str, default: bool) -> bool:
    value = section.get(key, default)
    if not isinstance(value, bool):
        raise ValueError(f"{CONFIG_SECTION}.{key} must be true/false. Got {value!r}")
    return value


def reader_config_from_mapping(raw: Any) -> ReaderConfig:
    """Build a `ReaderConfig` from the parsed YAML document."""

    if not isinstance(raw, dict):
        raise ValueError("config.yaml must be a mapping at the top level")
    section = raw.get(CONFIG_SECTION, {})
    if section is None:
        section = {}
    if not isinstance(section, dict):
        raise ValueError(f"config.yaml key {CONFIG_SECTION!r} must be a mapping")

    unknown = sorted(set(section) - {"encoding", "strict_groups", "analog_format", "check_trailing_data"})
    if unknown:
        raise ValueError(f"Unknown {CONFIG_SECTION} option(s): {', '.join(map(str, unknown))}")

    analog_format = section.get("analog_format")
    if analog_format is not None:
        analog_format = str(analog_format).strip().upper()

    return ReaderConfig(
        encoding=str(section.get("encoding", "latin-1")),
        strict_groups=_as_bool(section, "strict_groups", True),
        analog_format=analog_format,
        check_trailing_data=_as_bool(section, "check_trailing_data", True),
    )


def load_reader_config(config_path: str | Path) -> ReaderConfig:
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}. Expected a YAML file with {CONFIG_SECTION}.*")
    raw = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    return reader_config_from_mapping(raw)


__all__ = [
    "ANALOG_FORMATS",
    "CONFIG_SECTION",
    "ReaderConfig",
    "load_reader_config",
    "reader_config_from_mapping",
]
