"""
Logging setup.

Every module logs through logging.getLogger(__name__). Debug output is
opt-in per subsystem via FEATUREWARDEN_DEBUG:

    FEATUREWARDEN_DEBUG=cache,store featurewarden verify auth.login
    FEATUREWARDEN_DEBUG=* featurewarden capabilities
"""

import logging
import os
from typing import Dict, List, Optional


DEBUG_ENV = "FEATUREWARDEN_DEBUG"

# Subsystem name -> logger names it switches on
SUBSYSTEMS: Dict[str, List[str]] = {
    "cache": [
        "featurewarden.capabilities.memory_cache",
        "featurewarden.capabilities.disk_cache",
        "featurewarden.capabilities.invalidation",
    ],
    "discovery": [
        "featurewarden.capabilities.discovery",
        "featurewarden.relevant_tests",
    ],
    "store": ["featurewarden.store"],
    "verifier": ["featurewarden.verifier"],
    "agents": ["featurewarden.agents"],
    "git": ["featurewarden.git_utils"],
}


def enabled_subsystems(value: Optional[str] = None) -> List[str]:
    """Parse a FEATUREWARDEN_DEBUG value into known subsystem names."""
    if value is None:
        value = os.environ.get(DEBUG_ENV, "")
    names = [v.strip().lower() for v in value.split(",") if v.strip()]
    if "*" in names or "all" in names:
        return list(SUBSYSTEMS)
    return [n for n in names if n in SUBSYSTEMS]


def configure_logging(value: Optional[str] = None) -> List[str]:
    """Attach a stderr handler and enable debug for the requested subsystems.

    Returns:
        The subsystems that were switched to DEBUG.
    """
    root = logging.getLogger("featurewarden")
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("[%(name)s] %(levelname)s: %(message)s"))
        root.addHandler(handler)
    root.setLevel(logging.WARNING)

    enabled = enabled_subsystems(value)
    for name in enabled:
        for logger_name in SUBSYSTEMS[name]:
            logging.getLogger(logger_name).setLevel(logging.DEBUG)
    return enabled
