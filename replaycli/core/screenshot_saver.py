"""Screenshot files for replay runs."""

from datetime import datetime
from pathlib import Path


class ScreenshotSaver:
    """Write captured PNG bytes into one screenshots folder.

    Step captures are named after the step so they sort in run order
    (``003_click_failure.png``). Captures requested by a ``screenshot``
    action get a millisecond timestamp instead.
    """

    def __init__(self, output_dir: Path):
        self._output_dir = Path(output_dir)

    def get_filename(self, step_number: int, action: str, frame_type: str) -> str:
        """Name for a step capture, e.g. "003_click_failure.png"."""
        return f"{step_number:03d}_{action}_{frame_type}.png"

    def timestamped_path(self, label: str = "screenshot") -> Path:
        """Path for an ad-hoc capture, e.g. "screenshot_20250101_120000_123.png".

        The folder is created so drivers can write to the path directly.
        """
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")[:-3]
        self._output_dir.mkdir(parents=True, exist_ok=True)
        return self._output_dir / f"{label}_{stamp}.png"

    def save(
        self,
        data: bytes | None,
        step_number: int,
        action: str,
        frame_type: str,
    ) -> Path | None:
        """Save a step capture.

        Args:
            data: PNG bytes, or None when the platform could not capture
            step_number: Step number (1-indexed)
            action: Action kind of the step
            frame_type: What the capture shows (failure)

        Returns:
            Path of the written file, or None if there was nothing to write
        """
        if data is None:
            return None
        self._output_dir.mkdir(parents=True, exist_ok=True)
        name = self.get_filename(step_number, action, frame_type)
        return self._write(self._output_dir / name, data)

    def save_timestamped(self, data: bytes | None, label: str = "screenshot") -> Path | None:
        if data is None:
            return None
        return self._write(self.timestamped_path(label), data)

    @staticmethod
    def _write(path: Path, data: bytes) -> Path:
        path.write_bytes(data)
        return path
