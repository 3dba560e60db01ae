"""
Runtime settings for the consultation engine.

Settings come from three layers, lowest precedence first: field defaults,
a YAML file (``config/consilium.yaml``), and ``CONSILIUM_*`` environment
variables (a ``.env`` file is honoured via python-dotenv).
"""

import os
from typing import Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field


DEFAULT_CONFIG_PATH = "config/consilium.yaml"


class ConsultationSettings(BaseModel):
    """Tunable limits for routing, dispatch, caching and monitoring."""

    # Dispatch
    triage_timeout_seconds: float = Field(default=8.0, gt=0)
    specialist_timeout_seconds: float = Field(
        default=35.0, gt=0, description="Per-call deadline for one specialist"
    )
    session_deadline_seconds: float = Field(
        default=90.0, gt=0, description="Coarse deadline for the whole fan-out"
    )
    fast_path_deadline_seconds: float = Field(
        default=5.0, gt=0, description="Target latency for the fast-mode response"
    )

    # Routing
    default_specialist: str = "strength_sage"
    max_specialists: int = Field(default=5, ge=1)

    # Cache
    cache_max_entries: int = Field(default=1000, ge=1)
    cache_ttl_seconds: float = Field(default=24 * 60 * 60, gt=0)
    cache_write_attempts: int = Field(default=5, ge=1)
    similarity_threshold: float = Field(
        default=0.8, ge=0.0, le=1.0, description="Minimum score for a similar-case match"
    )

    # Monitoring
    adherence_threshold: float = Field(default=0.7, ge=0.0, le=1.0)

    # LLM-backed specialists
    specialist_model: str = "anthropic/claude-sonnet-4"
    specialist_temperature: float = Field(default=0.3, ge=0.0, le=2.0)

    @classmethod
    def from_yaml(cls, config_path: str = DEFAULT_CONFIG_PATH) -> "ConsultationSettings":
        """Load settings from a YAML file, falling back to defaults if missing."""
        try:
            with open(config_path) as f:
                config = yaml.safe_load(f) or {}
        except FileNotFoundError:
            return cls()
        return cls(**config.get("consultation", {}))

    @classmethod
    def from_env(
        cls,
        config_path: Optional[str] = None,
    ) -> "ConsultationSettings":
        """
        Build settings from YAML plus environment overrides.

        Args:
            config_path: YAML file to start from. Defaults to CONSILIUM_CONFIG
                or ``config/consilium.yaml``.

        Returns:
            ConsultationSettings with every CONSILIUM_<FIELD> variable applied
        """
        load_dotenv()
        config_path = config_path or os.getenv("CONSILIUM_CONFIG", DEFAULT_CONFIG_PATH)
        base = cls.from_yaml(config_path)

        overrides = {}
        for name in cls.model_fields:
            value = os.getenv(f"CONSILIUM_{name.upper()}")
            if value is not None:
                overrides[name] = value

        if not overrides:
            return base
        # Re-validate so string env values are coerced to the field types
        return cls(**{**base.model_dump(), **overrides})
