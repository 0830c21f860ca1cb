"""Contract logic (queue, reflect, replier, staking types) on an in-memory storage and mock chain environment."""

__version__ = "0.1.0"
__all__ = ["core", "queue", "reflect", "replier", "staking"]