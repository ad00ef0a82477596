"""Shared utilities: logging, pose transforms and the error taxonomy."""
