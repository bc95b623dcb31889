"""Simulator runtime helpers."""
