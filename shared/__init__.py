"""Shared library for the ClauseCheck analysis engine."""
