"""Model package - Core data structures for svp."""

from svp.model.vhost import EditResult, LineInfo, MutationResult, ServerBlock

__all__ = [
    "EditResult",
    "LineInfo",
    "MutationResult",
    "ServerBlock",
]
