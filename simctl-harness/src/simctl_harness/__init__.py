"""simctl-harness: iOS simulator privacy overrides for automated tests."""

__all__ = ["cli", "config", "privacy", "runtime"]

__version__ = "0.1.0"
