"""LLKB - learned-pattern lifecycle engine for a UI-test knowledge base."""

__version__ = "0.1.0"

__all__ = ["__version__"]
