"""
Run configuration
=================
Reads the flat ``key=value`` file that drives a conversion run::

    stlFilePath=part.stl
    boundsFactor=1.1 1.1 1.1 1.1 1.1 1.1
    grid=100
    axis=0
    thickness=2.0
    outputCsvFileName=porosity.csv
    outputVtkFilePath=porosity.vti
    outputVtk=true
    numThreads=4

Blank lines and ``#`` comments are skipped.  Unknown keys are logged and
ignored.  Everything the core needs is validated here, so the pipeline never
starts on a half-specified run.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

from .errors import ConfigError
from .mesh import BACKENDS

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.txt"

FIELD_NAMES = ("signedDistance", "porosity", "multigrayscale", "binary")

_TRUE = ("true", "1", "yes", "on")
_FALSE = ("false", "0", "no", "off")


@dataclass(frozen=True)
class PipelineConfig:
    """All settings for one run."""

    stl_path: Path
    bounds_factor: Tuple[float, float, float, float, float, float]
    grid: int
    axis: int
    thickness: float
    thickness_in_cells: bool = True
    delta: float = 1.0
    fields: Tuple[str, ...] = FIELD_NAMES
    csv_path: Optional[Path] = None
    csv_field: str = "porosity"
    vtk_path: Optional[Path] = None
    output_vtk: bool = False
    npz_path: Optional[Path] = None
    num_threads: int = 1
    chunk_size: int = 4096
    mesh_backend: str = "numpy"
    log_file: Optional[Path] = None
    extra: Dict[str, str] = field(default_factory=dict, compare=False)

    def with_overrides(self, **changes) -> "PipelineConfig":
        """Copy with the non-``None`` entries of *changes* applied and re-validated."""
        changes = {k: v for k, v in changes.items() if v is not None}
        updated = replace(self, **changes)
        _validate(updated)
        return updated

    @property
    def writes_vtk(self) -> bool:
        return self.output_vtk and self.vtk_path is not None


# ---------------------------------------------------------------------------
# Value parsers
# ---------------------------------------------------------------------------

def _parse_int(key: str, value: str) -> int:
    try:
        return int(value.strip())
    except ValueError:
        raise ConfigError(f"{key}: expected an integer, got {value!r}") from None


def _parse_float(key: str, value: str) -> float:
    try:
        result = float(value.strip())
    except ValueError:
        raise ConfigError(f"{key}: expected a number, got {value!r}") from None
    if not math.isfinite(result):
        raise ConfigError(f"{key}: expected a finite number, got {value!r}")
    return result


def _parse_bool(key: str, value: str) -> bool:
    text = value.strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ConfigError(f"{key}: expected true/false, got {value!r}")


def _parse_factors(key: str, value: str) -> Tuple[float, ...]:
    factors = tuple(_parse_float(key, token) for token in value.replace(",", " ").split())
    if len(factors) != 6:
        raise ConfigError(f"{key}: expected 6 factors, got {len(factors)}")
    return factors


def _parse_path(key: str, value: str) -> Path:
    text = value.strip()
    if not text:
        raise ConfigError(f"{key}: empty path")
    return Path(text)


def _parse_fields(key: str, value: str) -> Tuple[str, ...]:
    names = tuple(value.replace(",", " ").split())
    unknown = [n for n in names if n not in FIELD_NAMES]
    if unknown:
        raise ConfigError(f"{key}: unknown field(s) {unknown}; choose from {FIELD_NAMES}")
    if len(set(names)) != len(names):
        raise ConfigError(f"{key}: duplicate field names in {names}")
    if not names:
        raise ConfigError(f"{key}: at least one field is required")
    return names


# file key -> (attribute, parser)
_KEYS = {
    "stlFilePath": ("stl_path", _parse_path),
    "boundsFactor": ("bounds_factor", _parse_factors),
    "grid": ("grid", _parse_int),
    "axis": ("axis", _parse_int),
    "thickness": ("thickness", _parse_float),
    "thicknessInCells": ("thickness_in_cells", _parse_bool),
    "delta": ("delta", _parse_float),
    "fields": ("fields", _parse_fields),
    "outputCsvFileName": ("csv_path", _parse_path),
    "csvField": ("csv_field", lambda key, v: v.strip()),
    "outputVtkFilePath": ("vtk_path", _parse_path),
    "outputVtk": ("output_vtk", _parse_bool),
    "outputNpzFilePath": ("npz_path", _parse_path),
    "numThreads": ("num_threads", _parse_int),
    "chunkSize": ("chunk_size", _parse_int),
    "meshBackend": ("mesh_backend", lambda key, v: v.strip().lower()),
    "logFile": ("log_file", _parse_path),
}

_REQUIRED = ("stlFilePath", "boundsFactor", "grid", "axis", "thickness")


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

def parse_config(text: str, base_dir: Union[str, Path, None] = None) -> PipelineConfig:
    """Build a :class:`PipelineConfig` from the text of a config file.

    Relative paths are resolved against *base_dir* when given.
    """
    values: Dict[str, object] = {}
    extra: Dict[str, str] = {}
    for lineno, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        key = key.strip()
        if not sep:
            raise ConfigError(f"line {lineno}: expected key=value, got {raw!r}")
        if key not in _KEYS:
            logger.warning("Ignoring unknown config key %r (line %d)", key, lineno)
            extra[key] = value
            continue
        attr, parser = _KEYS[key]
        values[attr] = parser(key, value)

    missing = [k for k in _REQUIRED if _KEYS[k][0] not in values]
    if missing:
        raise ConfigError(f"missing required key(s): {', '.join(missing)}")

    if base_dir is not None:
        base = Path(base_dir)
        for attr in ("stl_path", "csv_path", "vtk_path", "npz_path", "log_file"):
            path = values.get(attr)
            if isinstance(path, Path) and not path.is_absolute():
                values[attr] = base / path

    config = PipelineConfig(extra=extra, **values)  # type: ignore[arg-type]
    _validate(config)
    return config


def load_config(path: Union[str, Path] = DEFAULT_CONFIG_PATH) -> PipelineConfig:
    """Read and validate the config file at *path*.

    Relative paths inside the file are taken relative to the file itself.
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"cannot read config file {path}: {exc}") from exc
    config = parse_config(text, base_dir=path.parent)
    logger.debug("Loaded configuration from %s", path)
    return config


def _validate(config: PipelineConfig) -> None:
    if not config.stl_path.is_file():
        raise ConfigError(f"stlFilePath: {config.stl_path} does not exist")
    if config.grid <= 0:
        raise ConfigError(f"grid: must be positive, got {config.grid}")
    if config.axis not in (0, 1, 2):
        raise ConfigError(f"axis: must be 0, 1 or 2, got {config.axis}")
    if not config.thickness > 0:
        raise ConfigError(f"thickness: must be positive, got {config.thickness}")
    if not 0.0 < config.delta <= 1.0:
        raise ConfigError(f"delta: must lie in (0, 1], got {config.delta}")
    if config.num_threads < 1:
        raise ConfigError(f"numThreads: must be >= 1, got {config.num_threads}")
    if config.chunk_size < 1:
        raise ConfigError(f"chunkSize: must be >= 1, got {config.chunk_size}")
    if config.mesh_backend not in BACKENDS:
        raise ConfigError(f"meshBackend: expected one of {BACKENDS}, got {config.mesh_backend!r}")
    if config.output_vtk and config.vtk_path is None:
        raise ConfigError("outputVtk is set but outputVtkFilePath is missing")
    if config.csv_path is not None and config.csv_field not in config.fields:
        raise ConfigError(f"csvField: {config.csv_field!r} is not among fields {config.fields}")
    if config.csv_path is None and not config.writes_vtk and config.npz_path is None:
        raise ConfigError("no output enabled; set outputCsvFileName, outputVtk or outputNpzFilePath")
