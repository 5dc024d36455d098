"""Utilities - logging, paths, clock."""
