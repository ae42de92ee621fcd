"""Android device interaction via adb."""

from __future__ import annotations

import re
import subprocess
import xml.etree.ElementTree as ET
from typing import Any

from replaycli.models.test import LocatorType

# uiautomator node attribute matched for each direct-lookup locator kind
LOOKUP_ATTRIBUTES = {
    LocatorType.TEXT: "text",
    LocatorType.ACCESSIBILITY_ID: "content-desc",
    LocatorType.ID: "resource-id",
}

KEYCODES = {
    "BACK": 4,
    "HOME": 3,
    "ENTER": 66,
    "TAB": 61,
    "SPACE": 62,
    "DEL": 67,
    "BACKSPACE": 67,
    "DELETE": 112,
    "ESCAPE": 111,
    "SEARCH": 84,
    "MENU": 82,
    "APP_SWITCH": 187,
    "VOLUME_UP": 24,
    "VOLUME_DOWN": 25,
    "POWER": 26,
    "DPAD_UP": 19,
    "DPAD_DOWN": 20,
    "DPAD_LEFT": 21,
    "DPAD_RIGHT": 22,
}

_BOUNDS_RE = re.compile(r"\[(\d+),(\d+)\]\[(\d+),(\d+)\]")


class DeviceController:
    """One Android device, driven through ``adb -s <id>``.

    Commands run synchronously; callers on the event loop wrap them in
    ``asyncio.to_thread``. Failing adb commands raise RuntimeError carrying
    adb's stderr.
    """

    def __init__(self, device_id: str):
        self._device_id = device_id

    @property
    def device_id(self) -> str:
        return self._device_id

    @staticmethod
    def list_devices() -> list[dict[str, str]]:
        """Devices known to the adb server.

        Returns:
            One dict per device with id, name (model, or "unknown") and
            status (device, offline, unauthorized, ...)
        """
        try:
            listing = subprocess.run(["adb", "devices", "-l"], capture_output=True, text=True)
        except FileNotFoundError as e:
            raise RuntimeError("adb not found on PATH") from e

        devices = []
        for line in listing.stdout.splitlines()[1:]:
            parts = line.split()
            if len(parts) < 2:
                continue
            model = re.search(r"model:(\S+)", line)
            devices.append({
                "id": parts[0],
                "name": model.group(1).replace("_", " ") if model else "unknown",
                "status": parts[1],
            })
        return devices

    def tap(self, x: int, y: int) -> None:
        self._adb(["shell", "input", "tap", str(x), str(y)])

    def swipe(self, x1: int, y1: int, x2: int, y2: int, duration_ms: int = 300) -> None:
        points = (x1, y1, x2, y2, duration_ms)
        self._adb(["shell", "input", "swipe", *map(str, points)])

    def type_text(self, text: str) -> None:
        """Type into the focused field; spaces become %s for ``input text``."""
        escaped = text.replace(" ", "%s").replace("'", "\\'").replace('"', '\\"')
        self._adb(["shell", "input", "text", escaped])

    def press_key(self, key: str) -> None:
        """Send a key event.

        Args:
            key: Key name (BACK, ENTER, ...), KEYCODE_* constant, or numeric code

        Raises:
            ValueError: If the name is not a known key
        """
        name = key.strip().upper()
        if name.startswith("KEYCODE_"):
            code: int | str | None = KEYCODES.get(name[len("KEYCODE_"):], name)
        elif name.isdigit():
            code = int(name)
        else:
            code = KEYCODES.get(name)

        if code is None:
            raise ValueError(f"Unknown keycode: {key}")

        self._adb(["shell", "input", "keyevent", str(code)])

    def dump_hierarchy(self) -> str:
        return self._adb(["exec-out", "uiautomator", "dump", "/dev/tty"])

    def find_element(self, kind: LocatorType, value: str) -> tuple[int, int] | None:
        """Single direct lookup against the current hierarchy.

        Args:
            kind: id, text, accessibility_id or xpath
            value: Locator value. An id also matches the part after the last
                "/" of the resource-id ("digit_1" matches "...:id/digit_1").

        Returns:
            (x, y) center coordinates or None if not found

        Raises:
            ValueError: For locator kinds that cannot be looked up on Android
        """
        root = self._parse_hierarchy(self.dump_hierarchy())
        if root is None:
            return None

        if kind == LocatorType.XPATH:
            node = self._find_by_xpath(root, value)
            return self._center(node) if node is not None else None

        attribute = LOOKUP_ATTRIBUTES.get(kind)
        if attribute is None:
            raise ValueError(f"{kind.value} locators are not supported on Android")

        for node in root.iter("node"):
            actual = node.get(attribute, "")
            if actual == value or (kind == LocatorType.ID and actual.endswith(f"/{value}")):
                center = self._center(node)
                if center is not None:
                    return center
        return None

    def take_screenshot(self) -> bytes:
        """PNG bytes from ``screencap``."""
        return self._adb(["exec-out", "screencap", "-p"], binary=True)

    def _adb(self, args: list[str], binary: bool = False) -> Any:
        """Run ``adb -s <device> <args>`` and return its stdout."""
        completed = subprocess.run(
            ["adb", "-s", self._device_id, *args],
            capture_output=True,
            text=not binary,
        )
        if completed.returncode != 0:
            stderr = completed.stderr
            if isinstance(stderr, bytes):
                stderr = stderr.decode(errors="replace")
            raise RuntimeError(f"adb command failed: {stderr.strip()}")
        return completed.stdout

    def _parse_hierarchy(self, xml_text: str) -> ET.Element | None:
        # uiautomator appends a status line after the XML document
        end = xml_text.rfind(">")
        start = xml_text.find("<")
        if start < 0 or end < 0:
            return None
        try:
            return ET.fromstring(xml_text[start:end + 1])
        except ET.ParseError:
            return None

    def _find_by_xpath(self, root: ET.Element, xpath: str) -> ET.Element | None:
        """Evaluate a class-based xpath such as //android.widget.Button[@text='OK'].

        The dump names every element "node"; a mirror tree tagged by class lets
        ElementTree's XPath subset address them. Unsupported syntax (functions,
        axes) raises ValueError.
        """
        mirror, originals = self._class_tree(root)
        path = xpath.strip()
        if path.startswith("/hierarchy"):
            path = path[len("/hierarchy"):]
        if path.startswith("/") and not path.startswith("//"):
            path = "." + path
        elif path.startswith("//"):
            path = "." + path
        try:
            found = mirror.find(path)
        except SyntaxError as e:
            raise ValueError(f"Unsupported xpath: {xpath}") from e
        return originals.get(id(found)) if found is not None else None

    def _class_tree(self, root: ET.Element) -> tuple[ET.Element, dict[int, ET.Element]]:
        originals: dict[int, ET.Element] = {}

        def copy(node: ET.Element) -> ET.Element:
            mirrored = ET.Element(node.get("class") or node.tag, dict(node.attrib))
            originals[id(mirrored)] = node
            mirrored.extend(copy(child) for child in node)
            return mirrored

        return copy(root), originals

    def _center(self, node: ET.Element) -> tuple[int, int] | None:
        bounds = self._parse_bounds(node.get("bounds", ""))
        if bounds is None:
            return None
        return (bounds[0] + bounds[2]) // 2, (bounds[1] + bounds[3]) // 2

    def _parse_bounds(self, bounds_str: str) -> list[int] | None:
        """Parse bounds string like '[0,0][1080,2340]'.

        Returns:
            [x1, y1, x2, y2] or None
        """
        match = _BOUNDS_RE.match(bounds_str)
        if match:
            return [int(g) for g in match.groups()]
        return None
