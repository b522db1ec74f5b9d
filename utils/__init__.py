"""Shared utilities for RogueWatch."""
