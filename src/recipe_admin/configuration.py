from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from omegaconf import DictConfig, OmegaConf
from pydantic import BaseModel, Field

from .models import ConfigMetadata, GenerationKind

load_dotenv()

CONFIG_PATH = Path(__file__).resolve().parent / "config" / "config.yaml"

# Environment variable -> dotted config key
ENV_OVERRIDES: Dict[str, str] = {
    "RECIPE_ADMIN_API_URL": "backend.base_url",
    "RECIPE_ADMIN_API_KEY": "backend.api_key",
    "RECIPE_ADMIN_POLL_INTERVAL": "generation.poll_interval",
}

# Older deployments only export the backend's own secret name.
LEGACY_API_KEY_VAR = "API_SECRET_KEY"


class BackendSettings(BaseModel):
    base_url: str
    api_key: Optional[str] = None
    timeout_seconds: float = Field(default=20.0, gt=0)


class GenerationSettings(BaseModel):
    default_user_name: str = "admin"
    poll_interval: float = Field(default=1.5, ge=0)
    settle_delay: float = Field(default=2.0, ge=0)
    simulation_tick: float = Field(default=1.0, ge=0)
    theme_counts: List[int] = Field(default_factory=lambda: [2, 3, 4, 5])
    menu_recipe_count: int = 3
    menu_themes: List[str] = Field(default_factory=list)
    theme_options: List[str] = Field(default_factory=list)


class CatalogSettings(BaseModel):
    untitled_label: str = "untitled"
    ingredients_sentinel: str = "recipe"
    ingredients_fallback: str = "N/A"
    storage_label: str = "bucket"


class DashboardSettings(BaseModel):
    backend: BackendSettings
    generation: GenerationSettings = Field(default_factory=GenerationSettings)
    catalog: CatalogSettings = Field(default_factory=CatalogSettings)


@lru_cache(maxsize=1)
def _load_default_config() -> DictConfig:
    if not CONFIG_PATH.exists():
        raise FileNotFoundError(f"Default config not found at {CONFIG_PATH}")
    return OmegaConf.load(CONFIG_PATH)


def get_default_config_container(resolve: bool = False) -> Dict[str, Any]:
    config = _load_default_config()
    return OmegaConf.to_container(config, resolve=resolve)  # type: ignore[return-value]


def _environment_overrides() -> DictConfig:
    overrides = OmegaConf.create({})
    api_key = os.environ.get(LEGACY_API_KEY_VAR)
    if api_key:
        OmegaConf.update(overrides, "backend.api_key", api_key)
    for variable, key in ENV_OVERRIDES.items():
        value = os.environ.get(variable)
        if value:
            OmegaConf.update(overrides, key, value)
    return overrides


def make_runtime_config(overrides: Optional[Dict[str, Any]] = None) -> DictConfig:
    """
    Merge the packaged defaults with environment and caller overrides.

    Precedence, lowest first: config.yaml, environment variables, `overrides`.
    Unknown keys are rejected because the base config is in struct mode.
    """
    base = OmegaConf.create(get_default_config_container(resolve=False))
    OmegaConf.set_struct(base, True)

    merged = OmegaConf.merge(base, _environment_overrides(), OmegaConf.create(overrides or {}))
    return DictConfig(merged)


def load_settings(overrides: Optional[Dict[str, Any]] = None) -> DashboardSettings:
    container = OmegaConf.to_container(make_runtime_config(overrides), resolve=True)
    return DashboardSettings.model_validate(container)


def build_config_metadata(settings: DashboardSettings) -> ConfigMetadata:
    generation = settings.generation
    return ConfigMetadata(
        kinds=list(GenerationKind),
        menu_themes=generation.menu_themes,
        theme_options=generation.theme_options,
        theme_counts=sorted(generation.theme_counts),
        default_user_name=generation.default_user_name,
        menu_recipe_count=generation.menu_recipe_count,
    )
