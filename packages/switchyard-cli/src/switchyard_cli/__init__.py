"""Switchyard CLI: inspect adapters and dry-run task routing."""
