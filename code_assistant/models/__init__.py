"""Data models for the code-assistant client."""
