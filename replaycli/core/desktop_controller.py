"""Thin wrapper around PyAutoGUI for desktop input."""

from __future__ import annotations

import io
from typing import Any


class DesktopController:
    """Mouse and keyboard automation on the local display."""

    def __init__(self, gui: Any = None) -> None:
        """Initialize controller.

        Args:
            gui: PyAutoGUI-compatible module (imported on first use if omitted)
        """
        self._gui = gui

    def ensure_available(self) -> None:
        """Import PyAutoGUI and check that a display is usable.

        Raises:
            RuntimeError: If PyAutoGUI is missing or cannot reach a display
        """
        gui = self._module()
        width, height = gui.size()
        if width <= 0 or height <= 0:
            raise RuntimeError("No usable display")

    def click(self, x: int, y: int) -> None:
        gui = self._module()
        gui.moveTo(x, y)
        gui.click()

    def type_text(self, text: str, interval: float = 0.0) -> None:
        self._module().write(text, interval=interval)

    def press(self, key: str) -> None:
        """Press a key or a "ctrl+shift+s" style chord."""
        gui = self._module()
        keys = [k.strip().lower() for k in key.split("+") if k.strip()]
        if len(keys) > 1:
            gui.hotkey(*keys)
        else:
            gui.press(keys[0] if keys else key)

    def drag(self, x1: int, y1: int, x2: int, y2: int, duration: float = 0.5) -> None:
        gui = self._module()
        gui.moveTo(x1, y1)
        gui.dragTo(x2, y2, duration=duration, button="left")

    def take_screenshot(self) -> bytes:
        """Capture the screen.

        Returns:
            PNG image bytes
        """
        image = self._module().screenshot()
        buffer = io.BytesIO()
        image.save(buffer, format="PNG")
        return buffer.getvalue()

    def _module(self) -> Any:
        if self._gui is None:
            try:
                import pyautogui
            except Exception as exc:
                raise RuntimeError(
                    "PyAutoGUI is not available. Install it and run with a display."
                ) from exc
            pyautogui.FAILSAFE = True
            self._gui = pyautogui
        return self._gui
