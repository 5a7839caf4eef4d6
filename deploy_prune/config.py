from typing import Any, Dict, List, Optional, Tuple
from dotenv import load_dotenv
from pathlib import Path
import sys
import re
import os

from .retention import DEFAULT_DELIMITER, InvalidRetentionCount, validate_keep

try:
    import tomllib as toml_loader
except ImportError:
    import tomli as toml_loader


def _resolve_env_string(value: str) -> str:
    if isinstance(value, str) and re.fullmatch(r"ENV_[A-Z0-9_]+", value):
        var_name = value[4:]
        env_val = os.getenv(var_name)
        if env_val is None:
            print(
                f"Warning: Environment variable '{var_name}' not set for placeholder '{value}'",
                file=sys.stderr,
            )
            return value
        return env_val
    return value


def _resolve_env_placeholders(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {k: _resolve_env_placeholders(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_resolve_env_placeholders(v) for v in obj]
    if isinstance(obj, tuple):
        return tuple(_resolve_env_placeholders(v) for v in obj)
    if isinstance(obj, str):
        return _resolve_env_string(obj)
    return obj


def _extra_env_paths(cfg_path: Path, data: Dict[str, Any]) -> List[Path]:
    dot_env = data.get("dot_env")
    dot_envs = data.get("dot_envs") or []
    env_paths: List[Path] = []
    if isinstance(dot_env, str) and dot_env:
        env_paths.append(cfg_path.parent / dot_env)
    if isinstance(dot_envs, list):
        for p in dot_envs:
            if isinstance(p, str) and p:
                env_paths.append(cfg_path.parent / p)
    return env_paths


def load_config(config_path: Optional[str]) -> Dict[str, Any]:
    if not config_path:
        return {}
    cfg_path = Path(config_path)
    if not cfg_path.exists():
        print(f"Config file not found: {cfg_path}", file=sys.stderr)
        sys.exit(1)
    try:
        with cfg_path.open("rb") as fp:
            data: Dict[str, Any] = toml_loader.load(fp)
    except (OSError, toml_loader.TOMLDecodeError) as err:
        print(f"Failed to read config TOML: {err}", file=sys.stderr)
        sys.exit(1)

    default_env = cfg_path.parent / ".env"
    if default_env.exists():
        load_dotenv(dotenv_path=str(default_env), override=False)
    for p in _extra_env_paths(cfg_path, data):
        load_dotenv(dotenv_path=str(p), override=False)

    return _resolve_env_placeholders(data)


def _parse_keep(value: Any) -> int:
    if isinstance(value, str):
        try:
            value = int(value.strip())
        except ValueError:
            raise InvalidRetentionCount(value) from None
    return validate_keep(value)


def resolve_retention(
    cfg: Dict[str, Any],
    keep: Optional[int] = None,
    delimiter: Optional[str] = None,
) -> Tuple[int, str]:
    retention_cfg = cfg.get("retention", {}) or {}
    if keep is None:
        keep = os.getenv("DEPLOY_KEEP", retention_cfg.get("keep"))
    delimiter = delimiter or retention_cfg.get("delimiter") or DEFAULT_DELIMITER
    return _parse_keep(keep), delimiter
