"""Data models for the teardown engine."""
