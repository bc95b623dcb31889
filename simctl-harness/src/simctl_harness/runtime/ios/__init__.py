"""iOS simulator runtime helpers for simctl-harness.

Thin wrappers around `xcrun simctl` so that every device-side change made by
the harness is a recorded, reproducible command.
"""
