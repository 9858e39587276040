"""YAML config loading with dataclass defaults."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from loguru import logger


@dataclass
class HarmonizationConfig:
    dn_scale: float = 10000.0


@dataclass
class LandsatConfig:
    apply_scale_factors: bool = False


@dataclass
class Sentinel2Config:
    max_cloud_pct: float = 20.0


@dataclass
class IndexConfig:
    ndrs_min: float = 0.0
    ndrs_max: float = 1.0
    ndrs_threshold: float = 0.5
    snow_threshold: float = 0.4
    hli_latitude: float = 34.0178
    tpi_radius_px: int = 180
    dem_band: str = "elevation"


@dataclass
class ZonalConfig:
    buffer_m: float = 30.0
    reducer: str = "mean"
    scale: float = 30.0
    crs: Optional[str] = None
    tile_scale: int = 1
    aoi_buffer_m: float = 10000.0


@dataclass
class ExportConfig:
    dest: str = "exports"
    retries: int = 3
    retry_backoff_sec: float = 1.0
    region: str = "us-west-2"
    table_format: str = "csv"


@dataclass
class ExecutionConfig:
    max_workers: int = 1
    report_dir: str = "job_reports"
    runs_dir: str = ".rsts_runs"


@dataclass
class PipelineConfig:
    harmonization: HarmonizationConfig = field(default_factory=HarmonizationConfig)
    landsat: LandsatConfig = field(default_factory=LandsatConfig)
    sentinel2: Sentinel2Config = field(default_factory=Sentinel2Config)
    indices: IndexConfig = field(default_factory=IndexConfig)
    zonal: ZonalConfig = field(default_factory=ZonalConfig)
    export: ExportConfig = field(default_factory=ExportConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _apply_section(target, raw: Dict[str, Any], section: str) -> None:
    values = raw.get(section) or {}
    for key, value in values.items():
        if not hasattr(target, key):
            logger.warning(f"Ignoring unknown config key {section}.{key}")
            continue
        if value is not None:
            setattr(target, key, value)


def load_config(path: Optional[str] = None) -> PipelineConfig:
    """Load config from YAML, falling back to defaults for missing keys."""
    if path is None:
        default = Path("config.yaml")
        if not default.exists():
            logger.warning("No config file found; using built-in defaults")
            return PipelineConfig()
        path = str(default)

    logger.info(f"Using config: {path}")
    with open(path) as f:
        raw = yaml.safe_load(f) or {}

    cfg = PipelineConfig()
    for section in ("harmonization", "landsat", "sentinel2", "indices",
                    "zonal", "export", "execution"):
        _apply_section(getattr(cfg, section), raw, section)

    if cfg.harmonization.dn_scale <= 0:
        raise ValueError("harmonization.dn_scale must be positive")
    return cfg
