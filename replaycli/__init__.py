"""replaycli - cross-platform UI test replay engine."""

__version__ = "0.1.0"
