from __future__ import annotations
from dataclasses import dataclass
from typing import Mapping, Optional
import os

from .constants import (
    COURT_PARQUET_PATH,
    _LLM_TIMEOUT,
    _MAX_DELIMITED_ROWS,
    _MAX_IMAGE_BYTES,
    _QUERY_TIMEOUT,
    _SCRAPE_TIMEOUT,
    _TASK_TIMEOUT,
)


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be numeric, got {raw!r}") from None


def _env_flag(env: Mapping[str, str], name: str) -> bool:
    return env.get(name, "").lower() in {"1", "true", "yes"}


@dataclass(frozen=True)
class Settings:
    openai_api_key: Optional[str] = None
    llm_model: str = "gpt-3.5-turbo"
    llm_timeout: float = _LLM_TIMEOUT
    disable_llm: bool = False
    scrape_timeout: float = _SCRAPE_TIMEOUT
    query_timeout: float = _QUERY_TIMEOUT
    task_timeout: float = _TASK_TIMEOUT
    max_image_bytes: int = _MAX_IMAGE_BYTES
    max_delimited_rows: int = _MAX_DELIMITED_ROWS
    court_parquet_path: str = COURT_PARQUET_PATH

    @property
    def llm_enabled(self) -> bool:
        return bool(self.openai_api_key) and not self.disable_llm

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if env is None else env
        return cls(
            openai_api_key=env.get("OPENAI_API_KEY") or None,
            llm_model=env.get("TF_LLM_MODEL", "gpt-3.5-turbo"),
            llm_timeout=_env_float(env, "TF_LLM_TIMEOUT", _LLM_TIMEOUT),
            disable_llm=_env_flag(env, "TF_DISABLE_LLM"),
            scrape_timeout=_env_float(env, "TF_SCRAPE_TIMEOUT", _SCRAPE_TIMEOUT),
            query_timeout=_env_float(env, "TF_QUERY_TIMEOUT", _QUERY_TIMEOUT),
            task_timeout=_env_float(env, "TF_TASK_TIMEOUT", _TASK_TIMEOUT),
            max_image_bytes=int(_env_float(env, "TF_MAX_IMAGE_BYTES", _MAX_IMAGE_BYTES)),
            max_delimited_rows=int(_env_float(env, "TF_MAX_DELIMITED_ROWS", _MAX_DELIMITED_ROWS)),
            court_parquet_path=env.get("TF_COURT_PARQUET_PATH", COURT_PARQUET_PATH),
        )
