"""Atomic JSON document persistence and advisory locking."""

from llkb.store.files import file_lock, load_document, save_json_atomic

__all__ = ["file_lock", "load_document", "save_json_atomic"]
