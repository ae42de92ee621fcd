"""Test case and suite file loading."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml

from replaycli.core.errors import TestCaseLoadError
from replaycli.models.test import TestCase

SUITE_CONFIG_NAMES = ("suite-config.json", "suite-config.yaml", "suite-config.yml")
TEST_CASE_SUFFIXES = (".json", ".yaml", ".yml")
# Keys a suite config may use for its start page, in priority order
SUITE_URL_KEYS = ("url", "urlOrPath", "path")


class TestCaseParser:
    """Parse recorded test case files (JSON or YAML) into TestCase objects."""

    # Tell pytest not to collect this as a test class
    __test__ = False

    @classmethod
    def parse(cls, path: Path) -> TestCase:
        """Parse a test case file.

        Args:
            path: Path to a .json, .yaml or .yml file

        Returns:
            Parsed TestCase

        Raises:
            TestCaseLoadError: If the file is missing or invalid
        """
        path = Path(path)
        data = cls._load_mapping(path, "Test case")

        try:
            return TestCase.from_dict(data, path=str(path))
        except (ValueError, TypeError) as e:
            raise TestCaseLoadError(f"Invalid test case {path.name}: {e}") from e

    @classmethod
    def validate(cls, test_case: TestCase) -> list[str]:
        """Collect model invariant violations without executing anything."""
        problems: list[str] = []
        seen: set[str] = set()
        for action in test_case.actions:
            problems.extend(action.validate())
            if action.id and action.id in seen:
                problems.append(f"Duplicate action id: {action.id}")
            seen.add(action.id)
            if action.platform != test_case.platform:
                problems.append(
                    f"Action {action.id} targets {action.platform.value}, "
                    f"test case is {test_case.platform.value}"
                )
        return problems

    @classmethod
    def find_suite_config(cls, test_path: Path) -> Path | None:
        """Locate the suite config beside the test file or one level up.

        Suites are laid out as test-suites/<suite>/suite-config.json with cases
        under test-suites/<suite>/tests/.
        """
        test_path = Path(test_path)
        start = test_path if test_path.is_dir() else test_path.parent
        for directory in (start, start.parent):
            for name in SUITE_CONFIG_NAMES:
                candidate = directory / name
                if candidate.is_file():
                    return candidate
        return None

    @classmethod
    def load_suite_config(cls, test_path: Path) -> dict[str, Any] | None:
        """Suite config for a test file or suite directory, or None if absent.

        Raises:
            TestCaseLoadError: If a config exists but cannot be parsed
        """
        config_path = cls.find_suite_config(test_path)
        if config_path is None:
            return None
        return cls._load_mapping(config_path, "Suite config")

    @classmethod
    def suite_url(cls, test_path: Path) -> str | None:
        """Start URL declared by the suite config, if any."""
        config = cls.load_suite_config(test_path)
        if not config:
            return None
        for key in SUITE_URL_KEYS:
            value = config.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
        return None

    @classmethod
    def suite_test_paths(cls, suite_dir: Path) -> list[Path]:
        """Ordered test case files of a suite.

        Uses the config's testCases list when present (paths relative to the
        suite folder or its tests/ folder), else every case file in tests/.

        Raises:
            TestCaseLoadError: If the suite folder or a listed case is missing
        """
        suite_dir = Path(suite_dir)
        if not suite_dir.is_dir():
            raise TestCaseLoadError(f"Suite folder not found: {suite_dir}")

        tests_dir = suite_dir / "tests"
        config = cls.load_suite_config(suite_dir) or {}
        listed = config.get("testCases") or []

        if listed:
            paths = []
            for entry in listed:
                paths.append(cls._resolve_listed(suite_dir, tests_dir, str(entry)))
            return paths

        if not tests_dir.is_dir():
            return []
        return sorted(
            p for p in tests_dir.iterdir()
            if p.is_file() and p.suffix.lower() in TEST_CASE_SUFFIXES
        )

    @classmethod
    def _resolve_listed(cls, suite_dir: Path, tests_dir: Path, entry: str) -> Path:
        entry_path = Path(entry)
        candidates = [entry_path] if entry_path.is_absolute() else [
            suite_dir / entry_path,
            tests_dir / entry_path,
            tests_dir / f"{entry}.json",
        ]
        for candidate in candidates:
            if candidate.is_file():
                return candidate
        raise TestCaseLoadError(f"Suite lists missing test case: {entry}")

    @classmethod
    def _load_mapping(cls, path: Path, kind: str) -> dict[str, Any]:
        try:
            with open(path, encoding="utf-8") as f:
                if path.suffix.lower() == ".json":
                    data = json.load(f)
                else:
                    data = yaml.safe_load(f)
        except FileNotFoundError:
            raise TestCaseLoadError(f"{kind} file not found: {path}")
        except json.JSONDecodeError as e:
            raise TestCaseLoadError(f"Invalid JSON in {path.name}: {e}")
        except UnicodeDecodeError:
            raise TestCaseLoadError(f"{kind} file is not valid UTF-8: {path.name}")
        except yaml.YAMLError as e:
            raise TestCaseLoadError(f"Invalid YAML in {path.name}: {e}")
        except OSError as e:
            raise TestCaseLoadError(f"Could not read {path}: {e}")

        if data is None:
            raise TestCaseLoadError(f"{kind} file is empty: {path.name}")
        if not isinstance(data, dict):
            raise TestCaseLoadError(f"{kind} file must contain an object: {path.name}")
        return data
