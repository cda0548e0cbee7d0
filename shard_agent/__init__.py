"""Autonomous agent runner for a remote world shard."""

__version__ = "0.3.0"
