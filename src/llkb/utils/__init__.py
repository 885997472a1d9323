"""Shared utilities for LLKB."""

from llkb.utils.time import utc_now

__all__ = ["utc_now"]
