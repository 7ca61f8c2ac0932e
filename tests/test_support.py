"""Tests for the browser capability check."""

from __future__ import annotations

import pytest

from popcall.models import Environment
from popcall.support import firefox_version, is_supported

CHROME_WIN = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0 Safari/537.36"
CHROME_MAC = "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0 Safari/537.36"
OPERA_MAC = CHROME_MAC + " OPR/105.0"
FIREFOX_22 = "Mozilla/5.0 (Windows NT 6.1; rv:22.0) Gecko/20100101 Firefox/22.0"
FIREFOX_23 = "Mozilla/5.0 (Windows NT 6.1; rv:23.0) Gecko/20100101 Firefox/23.0"
FIREFOX_120 = "Mozilla/5.0 (X11; Linux x86_64; rv:120.0) Gecko/20100101 Firefox/120.0"


@pytest.mark.parametrize(
    "env, expected",
    [
        (Environment(user_agent=CHROME_WIN, app_version="5.0 (Windows)", chrome_object=True), True),
        (Environment(user_agent=CHROME_MAC, app_version="5.0 (Macintosh)", chrome_object=True), False),
        (Environment(user_agent=OPERA_MAC, app_version="5.0 (Macintosh)", chrome_object=True), True),
        (Environment(user_agent=CHROME_MAC, app_version="5.0 (Macintosh)", chrome_object=True, opera_object=True), True),
        (Environment(user_agent=FIREFOX_22), False),
        (Environment(user_agent=FIREFOX_23), True),
        (Environment(user_agent=FIREFOX_120, app_version="5.0 (X11)"), True),
        (Environment(user_agent="Mozilla/5.0 Firefox"), False),
        (Environment(user_agent=CHROME_WIN, chrome_object=True, has_media_capture=False), False),
    ],
    ids=[
        "chrome-windows",
        "chrome-mac",
        "opera-mac-ua",
        "opera-mac-object",
        "firefox-too-old",
        "firefox-minimum",
        "firefox-current",
        "firefox-unknown-version",
        "no-media-capture",
    ],
)
def test_is_supported(env, expected):
    assert is_supported(env) is expected


def test_firefox_version():
    assert firefox_version(FIREFOX_120) == 120
    assert firefox_version(CHROME_WIN) is None
