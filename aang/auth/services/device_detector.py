"""
Device detection from User-Agent strings.

Builds the human-readable label stored on each session entry.
"""

import logging
import re
from typing import TypedDict

logger = logging.getLogger(__name__)

UNKNOWN_DEVICE = "Unknown device"


class DeviceInfo(TypedDict):
    """Device information extracted from User-Agent."""
    browser: str
    os: str
    device: str
    deviceType: str
    displayName: str


class DeviceDetector:
    """
    Extracts browser, OS and device details from a User-Agent header.
    """

    _OS_PATTERNS = [
        (r"iPhone|iPad|iPod", "iOS"),
        (r"Android", "Android"),
        (r"Windows NT", "Windows"),
        (r"CrOS", "Chrome OS"),
        (r"Mac OS X", "macOS"),
        (r"Linux", "Linux"),
    ]

    # Order matters: Edge and Opera also advertise Chrome, Chrome also advertises Safari
    _BROWSER_PATTERNS = [
        (r"Edg/", "Edge"),
        (r"OPR/|Opera", "Opera"),
        (r"Chrome/|CriOS/", "Chrome"),
        (r"Firefox/|FxiOS/", "Firefox"),
        (r"Safari/", "Safari"),
        (r"okhttp", "Android App"),
        (r"Expo|CFNetwork", "Mobile App"),
    ]

    _DEVICE_PATTERNS = [
        (r"iPhone", "iPhone"),
        (r"iPad", "iPad"),
        (r"iPod", "iPod"),
        (r"Pixel \d+", None),
        (r"SM-[A-Z0-9]+", None),
    ]

    _MOBILE_PATTERNS = [
        r"Mobile",
        r"iPhone",
        r"iPod",
    ]

    _TABLET_PATTERNS = [
        r"iPad",
        r"Tablet",
    ]

    def detect(self, user_agent: str) -> DeviceInfo:
        """
        Parse User-Agent and return device information.

        Never raises. An empty or unparseable header yields "Unknown device".

        Returns:
            dict with fields:
                - browser: "Chrome" | "Safari" | "Firefox" | "Edge" | ...
                - os: "iOS" | "Android" | "Windows" | "macOS" | "Linux" | ...
                - device: model name when the header carries one
                - deviceType: "mobile" | "tablet" | "desktop"
                - displayName: e.g. "Chrome on macOS"
        """
        if not user_agent:
            return self._unknown()

        try:
            os_name = self._match(self._OS_PATTERNS, user_agent)
            browser = self._match(self._BROWSER_PATTERNS, user_agent)
            device = self._detect_device(user_agent)
            device_type = self._detect_device_type(user_agent)
        except (re.error, TypeError) as e:
            logger.warning(f"User-Agent parsing failed: {e}")
            return self._unknown()

        if os_name == "Unknown" and browser == "Unknown":
            display_name = UNKNOWN_DEVICE
        else:
            display_name = f"{browser} on {os_name}"

        return DeviceInfo(
            browser=browser,
            os=os_name,
            device=device,
            deviceType=device_type,
            displayName=display_name,
        )

    @staticmethod
    def _unknown() -> DeviceInfo:
        return DeviceInfo(
            browser="Unknown",
            os="Unknown",
            device="Unknown",
            deviceType="desktop",
            displayName=UNKNOWN_DEVICE,
        )

    @staticmethod
    def _match(patterns, user_agent: str) -> str:
        for pattern, name in patterns:
            if re.search(pattern, user_agent, re.IGNORECASE):
                return name
        return "Unknown"

    def _detect_device(self, user_agent: str) -> str:
        for pattern, name in self._DEVICE_PATTERNS:
            match = re.search(pattern, user_agent)
            if match:
                return name or match.group(0)
        return "Unknown"

    def _detect_device_type(self, user_agent: str) -> str:
        """Detect device type (mobile, tablet, desktop) from User-Agent."""
        for pattern in self._TABLET_PATTERNS:
            if re.search(pattern, user_agent, re.IGNORECASE):
                return "tablet"

        for pattern in self._MOBILE_PATTERNS:
            if re.search(pattern, user_agent, re.IGNORECASE):
                return "mobile"

        # Android without "Mobile" is a tablet
        if re.search(r"Android", user_agent, re.IGNORECASE):
            return "tablet"

        return "desktop"
