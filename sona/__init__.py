"""SONA continual-learning memory core package."""

__all__ = [
    "runtime",
]
