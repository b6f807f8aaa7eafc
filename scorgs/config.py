"""
scorgs.config — YAML Configuration Loader
==========================================

This module reads ``config.yaml`` for **infrastructure-only** settings
(platform identity, RSI endpoint, windows and thresholds used by the
services).  Secrets (database URL, JWT secret, verification secret,
Discord tokens) never live here; they come from the environment / ``.env``.

Usage::

    from scorgs.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.platform_name)     # "SC Orgs"
    print(cfg.rsi_base_url)      # "https://robertsspaceindustries.com"
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ScorgsConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    platform_name: str

    # External endpoints
    rsi_base_url: str
    frontend_url: str

    # API / bot
    api_port: int
    bot_prefix: str

    # Windows & thresholds
    upvote_cooldown_days: int = 7
    application_reapply_days: int = 30
    onboarding_overdue_days: int = 30
    certification_expiry_warning_days: int = 30
    reacknowledgment_threshold: float = 0.10  # fraction of content length
    reminder_sweep_minutes: int = 5


DEFAULT_CONFIG = ScorgsConfig(
    platform_name="SC Orgs",
    rsi_base_url="https://robertsspaceindustries.com",
    frontend_url="http://localhost:5173",
    api_port=8000,
    bot_prefix="!",
)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> ScorgsConfig:
    """Read *path* and return a :class:`ScorgsConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    return ScorgsConfig(
        platform_name=raw["platform_name"],
        rsi_base_url=str(raw["rsi_base_url"]).rstrip("/"),
        frontend_url=str(raw["frontend_url"]).rstrip("/"),
        api_port=int(raw["api_port"]),
        bot_prefix=raw.get("bot_prefix", DEFAULT_CONFIG.bot_prefix),
        upvote_cooldown_days=int(
            raw.get("upvote_cooldown_days", DEFAULT_CONFIG.upvote_cooldown_days)
        ),
        application_reapply_days=int(
            raw.get("application_reapply_days", DEFAULT_CONFIG.application_reapply_days)
        ),
        onboarding_overdue_days=int(
            raw.get("onboarding_overdue_days", DEFAULT_CONFIG.onboarding_overdue_days)
        ),
        certification_expiry_warning_days=int(
            raw.get(
                "certification_expiry_warning_days",
                DEFAULT_CONFIG.certification_expiry_warning_days,
            )
        ),
        reacknowledgment_threshold=float(
            raw.get("reacknowledgment_threshold", DEFAULT_CONFIG.reacknowledgment_threshold)
        ),
        reminder_sweep_minutes=int(
            raw.get("reminder_sweep_minutes", DEFAULT_CONFIG.reminder_sweep_minutes)
        ),
    )
