# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Hearth config — defaults, JSON overrides, logging setup.

Config lives in get_paths().config_file. Missing or corrupt files fall
back to defaults; HEARTH_LLM_URL / HEARTH_LLM_MODEL win over both.
"""

import json
import logging
import os
from typing import Any, Dict, Optional

from pydantic import BaseModel, ValidationError

from core.paths import get_paths

logger = logging.getLogger("hearth.config")

DEFAULT_CONFIG: Dict[str, Any] = {
    "llm_url": "http://localhost:11434",
    "llm_model": "mistral:7b",
    "llm_timeout": 30,
    "llm_temperature": 0.2,
    "llm_max_tokens": 1024,
    "log_level": "INFO",
}

_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class HearthConfig(BaseModel):
    """Runtime settings. Unknown keys are kept for forward compat."""
    model_config = {"extra": "allow"}

    llm_url: str = DEFAULT_CONFIG["llm_url"]
    llm_model: str = DEFAULT_CONFIG["llm_model"]
    llm_timeout: int = DEFAULT_CONFIG["llm_timeout"]
    llm_temperature: float = DEFAULT_CONFIG["llm_temperature"]
    llm_max_tokens: int = DEFAULT_CONFIG["llm_max_tokens"]
    log_level: str = DEFAULT_CONFIG["log_level"]


def load_config() -> HearthConfig:
    """Load config, falling back to defaults."""
    config = dict(DEFAULT_CONFIG)
    path = get_paths().config_file
    if path.exists():
        try:
            user = json.loads(path.read_text())
            if isinstance(user, dict):
                config.update(user)
            else:
                logger.warning("Config %s is not an object, using defaults", path)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Could not read config %s: %s", path, e)

    if os.environ.get("HEARTH_LLM_URL"):
        config["llm_url"] = os.environ["HEARTH_LLM_URL"]
    if os.environ.get("HEARTH_LLM_MODEL"):
        config["llm_model"] = os.environ["HEARTH_LLM_MODEL"]

    try:
        return HearthConfig.model_validate(config)
    except ValidationError as e:
        logger.warning("Invalid config values, using defaults: %s", e)
        return HearthConfig()


def setup_logging(level: Optional[str] = None) -> logging.Logger:
    """Configure the hearth logger to file + stderr. Safe to call twice."""
    paths = get_paths()
    paths.data_dir.mkdir(parents=True, exist_ok=True)

    logger_ = logging.getLogger("hearth")
    level_name = (level or load_config().log_level).upper()
    logger_.setLevel(getattr(logging, level_name, logging.INFO))

    if getattr(logger_, "_hearth_configured", False):
        return logger_

    fh = logging.FileHandler(str(paths.log_file), mode="a")
    fh.setFormatter(logging.Formatter(_LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    logger_.addHandler(fh)

    sh = logging.StreamHandler()
    sh.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
    logger_.addHandler(sh)

    logger_._hearth_configured = True
    return logger_
