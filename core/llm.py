# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Hearth LLM — local language model interface via Ollama.

Backs the comprehension step of signal extraction. Endpoint, model and
timeouts come from core.config. Falls back gracefully when Ollama is
down: every call returns None and the caller decides what that means.
"""

import json
import logging
import time
import urllib.error
import urllib.request
from typing import Optional

from core.config import load_config

logger = logging.getLogger("hearth.llm")

# Cache availability check (don't spam connection attempts)
_last_check: float = 0
_last_available: bool = False
_CHECK_INTERVAL = 60  # seconds


def _api_call(endpoint: str, payload: dict, timeout: Optional[int] = None) -> Optional[dict]:
    """Raw HTTP call to Ollama API. Returns parsed JSON or None on failure."""
    config = load_config()
    url = f"{config.llm_url}{endpoint}"
    data = json.dumps(payload).encode("utf-8")

    req = urllib.request.Request(
        url,
        data=data,
        headers={"Content-Type": "application/json"},
        method="POST",
    )

    try:
        with urllib.request.urlopen(req, timeout=timeout or config.llm_timeout) as resp:
            return json.loads(resp.read().decode("utf-8"))
    except (urllib.error.URLError, TimeoutError, OSError) as e:
        logger.debug("Ollama API error (%s): %s", endpoint, e)
        return None
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.warning("Ollama returned unreadable body (%s): %s", endpoint, e)
        return None


def is_available() -> bool:
    """Check if Ollama is running and responsive. Cached for 60s."""
    global _last_check, _last_available

    now = time.time()
    if now - _last_check < _CHECK_INTERVAL:
        return _last_available

    _last_check = now
    try:
        req = urllib.request.Request(f"{load_config().llm_url}/api/tags", method="GET")
        with urllib.request.urlopen(req, timeout=5) as resp:
            _last_available = resp.status == 200
    except (urllib.error.URLError, TimeoutError, OSError):
        _last_available = False

    return _last_available


def reset_availability() -> None:
    """Forget the cached availability result."""
    global _last_check, _last_available
    _last_check = 0
    _last_available = False


def query(
    prompt: str,
    system: Optional[str] = None,
    temperature: Optional[float] = None,
    max_tokens: Optional[int] = None,
    json_mode: bool = False,
) -> Optional[str]:
    """
    Send a prompt to Ollama, get a text response.

    Returns None if Ollama is unavailable (caller should fall back).
    """
    if not is_available():
        return None

    config = load_config()
    payload = {
        "model": config.llm_model,
        "prompt": prompt,
        "stream": False,
        "options": {
            "temperature": config.llm_temperature if temperature is None else temperature,
            "num_predict": max_tokens or config.llm_max_tokens,
        },
    }
    if system:
        payload["system"] = system
    if json_mode:
        payload["format"] = "json"

    result = _api_call("/api/generate", payload)
    if result and "response" in result:
        return result["response"].strip()
    return None
