from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

from sheet_import.errors import ConfigurationError

DEFAULT_SENSITIVE_FIELDS = ("MerchantKey", "Password", "AppSecret", "ApiKey", "Token")


@dataclass(frozen=True)
class Settings:
    """Runtime knobs, read from the environment once per call site."""
    log_level: str = "INFO"
    log_format: str = "text"            # "text" or "json"
    progress_step: int = 100            # rows between progress callbacks
    csv_encoding: str = "utf-8-sig"     # strips a BOM when present
    csv_delimiter: str = ","
    sensitive_fields: tuple[str, ...] = DEFAULT_SENSITIVE_FIELDS


def _int_env(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        raise ConfigurationError(f"{name}: expected an integer, got {raw!r}")
    if value <= 0:
        raise ConfigurationError(f"{name}: must be positive, got {value}")
    return value


def _csv_env(env: Mapping[str, str], name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = env.get(name)
    if raw is None:
        return default
    return tuple(p.strip() for p in raw.split(",") if p.strip())


def get_settings(env: Mapping[str, str] | None = None) -> Settings:
    """
    Build `Settings` from environment variables.

    - `SHEET_IMPORT_LOG_LEVEL`       (default `INFO`)
    - `SHEET_IMPORT_LOG_FORMAT`      `text` | `json` (default `text`)
    - `SHEET_IMPORT_PROGRESS_STEP`   positive int (default 100)
    - `SHEET_IMPORT_CSV_ENCODING`    (default `utf-8-sig`)
    - `SHEET_IMPORT_CSV_DELIMITER`   (default `,`)
    - `SHEET_IMPORT_SENSITIVE_FIELDS` comma separated names
    """
    env = os.environ if env is None else env

    log_format = env.get("SHEET_IMPORT_LOG_FORMAT", "text").strip().lower()
    if log_format not in ("text", "json"):
        raise ConfigurationError(f"SHEET_IMPORT_LOG_FORMAT: expected text or json, got {log_format!r}")

    encoding = env.get("SHEET_IMPORT_CSV_ENCODING", "utf-8-sig").strip()
    # plain utf-8 would keep a BOM glued to the first header
    if encoding.lower() in ("utf-8", "utf8"):
        encoding = "utf-8-sig"

    return Settings(
        log_level=env.get("SHEET_IMPORT_LOG_LEVEL", "INFO").strip().upper(),
        log_format=log_format,
        progress_step=_int_env(env, "SHEET_IMPORT_PROGRESS_STEP", 100),
        csv_encoding=encoding,
        csv_delimiter=env.get("SHEET_IMPORT_CSV_DELIMITER", ",") or ",",
        sensitive_fields=_csv_env(env, "SHEET_IMPORT_SENSITIVE_FIELDS", DEFAULT_SENSITIVE_FIELDS),
    )
