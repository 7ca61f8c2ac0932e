"""Runtime capability check for placing calls."""

from __future__ import annotations

import logging
import re
from typing import Optional

from popcall.config import MIN_FIREFOX_VERSION
from popcall.models import Environment

logger = logging.getLogger(__name__)

_FIREFOX_VERSION_RE = re.compile(r"firefox/(\d+)")


def is_supported(env: Environment) -> bool:
    """Return True if calls can be placed from *env*.

    Chrome on macOS is known to misbehave and is rejected outright, as are
    Firefox releases older than ``MIN_FIREFOX_VERSION``.  A Firefox whose
    version cannot be determined is treated as unsupported.
    """
    if not env.has_media_capture:
        return False

    user_agent = env.user_agent.lower()
    is_opera = env.opera_object or "OPR/" in env.user_agent
    is_firefox = "firefox" in user_agent
    is_chrome = env.chrome_object and not is_opera

    if "Mac" in env.app_version and is_chrome:
        return False

    if is_firefox:
        version = firefox_version(env.user_agent)
        if version is None:
            logger.debug("Could not detect Firefox version from %r", env.user_agent)
            return False
        if version < MIN_FIREFOX_VERSION:
            return False

    return True


def firefox_version(user_agent: str) -> Optional[int]:
    match = _FIREFOX_VERSION_RE.search(user_agent.lower())
    if match is None:
        return None
    return int(match.group(1))
