from __future__ import annotations

import argparse
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml  # type: ignore[import-untyped]

from .normalization import MergeSettings

DEFAULT_JSON_PATH = "data/canonicalContactData.json"
DEFAULT_LOG_DIR = "logs"


@dataclass
class InputsConfig:
    json: str = DEFAULT_JSON_PATH
    update_from_csv: Optional[str] = None
    import_csv: Optional[str] = None
    export_csv: Optional[str] = None


@dataclass
class OutputsConfig:
    out: str = DEFAULT_JSON_PATH
    log_dir: Path = Path(DEFAULT_LOG_DIR)


@dataclass
class DefaultsConfig:
    brand: str = "tsa"
    office: str = "PLY"
    source: str = "Office365"


@dataclass
class RunConfig:
    fail_on_diff: bool = False
    dry_run: bool = False
    add_missing: bool = False


@dataclass
class LoggingConfig:
    level: str = "INFO"


@dataclass
class SyncConfig:
    inputs: InputsConfig
    outputs: OutputsConfig
    defaults: DefaultsConfig
    run: RunConfig
    logging: LoggingConfig

    def merge_settings(self) -> MergeSettings:
        return MergeSettings.from_args(
            self.defaults.brand, self.defaults.office, source=self.defaults.source
        )


def _load_yaml(path: Optional[str]) -> Dict[str, Any]:
    if not path:
        return {}
    with open(path, "r", encoding="utf-8") as handle:
        return yaml.safe_load(handle) or {}


def _flag(args: argparse.Namespace, name: str, configured: Any) -> bool:
    value = getattr(args, name, None)
    if value:
        return True
    return bool(configured)


def load_sync_config(args: argparse.Namespace) -> SyncConfig:
    config_data = _load_yaml(getattr(args, "config", None))
    inputs_cfg = config_data.get("inputs", {}) or {}
    outputs_cfg = config_data.get("outputs", {}) or {}
    defaults_cfg = config_data.get("defaults", {}) or {}
    run_cfg = config_data.get("run", {}) or {}
    logging_cfg = config_data.get("logging", {}) or {}

    json_path = getattr(args, "json", None) or inputs_cfg.get("json") or DEFAULT_JSON_PATH
    inputs = InputsConfig(
        json=json_path,
        update_from_csv=getattr(args, "update_from_csv", None) or inputs_cfg.get("update_from_csv"),
        import_csv=getattr(args, "import_csv", None) or inputs_cfg.get("import_csv"),
        export_csv=getattr(args, "export_csv", None) or inputs_cfg.get("export_csv"),
    )

    outputs = OutputsConfig(
        out=getattr(args, "out", None) or outputs_cfg.get("out") or json_path,
        log_dir=Path(
            getattr(args, "log_dir", None) or outputs_cfg.get("log_dir") or DEFAULT_LOG_DIR
        ),
    )

    defaults = DefaultsConfig(
        brand=getattr(args, "default_brand", None) or defaults_cfg.get("brand", "tsa"),
        office=getattr(args, "default_office", None) or defaults_cfg.get("office", "PLY"),
        source=defaults_cfg.get("source", "Office365"),
    )

    run = RunConfig(
        fail_on_diff=_flag(args, "fail_on_diff", run_cfg.get("fail_on_diff", False)),
        dry_run=_flag(args, "dry_run", run_cfg.get("dry_run", False)),
        add_missing=_flag(args, "add_missing", run_cfg.get("add_missing", False)),
    )

    arg_level = getattr(args, "log_level", None)
    if not arg_level and getattr(args, "verbose", False):
        arg_level = "DEBUG"
    effective_level = (arg_level or logging_cfg.get("level") or "INFO").upper()
    logging_config = LoggingConfig(level=effective_level)

    return SyncConfig(
        inputs=inputs,
        outputs=outputs,
        defaults=defaults,
        run=run,
        logging=logging_config,
    )
