# src/morphorecon/config.py
from __future__ import annotations

# General imports (stdlib)
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Optional

# Local imports
from .exceptions import ConfigError, DataNotFound


@dataclass(frozen=True)
class Pathing:
    directory: Path = Path(".")                                                  # Parent directory containing reconstruction files
    output_directory: Optional[Path] = None                                      # Optional: Output directory (default: <directory>/Processed)
    swc_suffix: str = ".swc"                                                     # SWC file suffix
    json_suffix: str = ".json"                                                   # JSON file suffix


@dataclass(frozen=True)
class Processing:
    chunked_json: bool = False                                                   # Read JSON files in chunked mode (every neuron needs axon + dendrite)
    skip_invalid: bool = False                                                   # Log and skip files that fail to parse instead of aborting
    overwrite: bool = True                                                       # Rewrite outputs that already exist
    page_size: Optional[int] = None                                              # Optional: Nodes per structure per output page (None: single document)


@dataclass(frozen=True)
class Parameters:
    indent: Optional[int] = 2                                                    # JSON output indentation (None: compact)


@dataclass(frozen=True)
class Config:
    pathing: Pathing = Pathing()                                                 # File/directory locations and naming conventions
    processing: Processing = Processing()                                        # Processing toggles and runtime behavior
    parameters: Parameters = Parameters()                                        # Output parameters


_SECTIONS = {"pathing": Pathing, "processing": Processing, "parameters": Parameters}


def _split_overrides(overrides: dict[str, Any]) -> dict[str, dict[str, Any]]:
    """Route flat keyword overrides to the Config section declaring them."""
    routed: dict[str, dict[str, Any]] = {name: {} for name in _SECTIONS}

    for key, value in overrides.items():
        owners = [name for name, section in _SECTIONS.items() if key in {f.name for f in fields(section)}]
        if not owners:
            raise ConfigError(f"Config: unknown setting {key!r}.")
        routed[owners[0]][key] = value

    return routed


def make_config(directory: Path, **overrides: Any) -> Config:
    """
    Build and validate a Config object for a conversion run.

    Use:
        Start from the dataclass defaults, apply `directory` and any flat
        keyword overrides (e.g. `page_size=500`, `chunked_json=True`) to the
        section that declares them, then validate.

    Args:
        directory (Path): Directory containing reconstruction files.
        **overrides: Setting names from any Config section.

    Returns:
        Config: Fully-initialized configuration.

    Raises:
        ConfigError: If a setting is unknown or has an invalid value.
        DataNotFound: If `directory` does not exist or is not a directory.
    """
    # Validate that a directory is configured
    if not str(directory).strip():
        raise ConfigError("Config: 'pathing.directory' is empty.")

    # Validate that the configured directory exists on disk
    directory = Path(directory)
    if not directory.is_dir():
        raise DataNotFound(f"directory not found: {directory}")

    routed = _split_overrides(overrides)
    cfg = Config()
    cfg = replace(
        cfg,
        pathing=replace(cfg.pathing, directory=directory, **routed["pathing"]),
        processing=replace(cfg.processing, **routed["processing"]),
        parameters=replace(cfg.parameters, **routed["parameters"]),
    )

    # Normalize suffixes so the leading dot is always present
    swc_suf = str(cfg.pathing.swc_suffix).strip()
    json_suf = str(cfg.pathing.json_suffix).strip()
    if not swc_suf or not json_suf:
        raise ConfigError("Config: 'pathing.swc_suffix' and 'pathing.json_suffix' must be non-empty.")
    swc_suf = swc_suf if swc_suf.startswith(".") else "." + swc_suf
    json_suf = json_suf if json_suf.startswith(".") else "." + json_suf
    if swc_suf == json_suf:
        raise ConfigError("Config: 'pathing.swc_suffix' and 'pathing.json_suffix' must differ.")

    # Default the output directory under the data directory
    out_dir = cfg.pathing.output_directory
    out_dir = Path(out_dir) if out_dir is not None else directory / "Processed"
    if out_dir.resolve() == directory.resolve():
        raise ConfigError("Config: 'pathing.output_directory' must differ from 'pathing.directory'.")
    cfg = replace(cfg, pathing=replace(cfg.pathing, swc_suffix=swc_suf, json_suffix=json_suf, output_directory=out_dir))

    # Validate numeric settings
    page_size = cfg.processing.page_size
    if page_size is not None and (not isinstance(page_size, int) or page_size < 1):
        raise ConfigError(f"Config: 'processing.page_size' must be a positive integer or None, got {page_size!r}.")

    # Return the validated configuration
    return cfg
