"""
Cross-item resolution (merge + placeholder rewriting)
"""

from codegraph_rs.resolve.merge import FragmentMerger, MergedGraph
from codegraph_rs.resolve.resolver import CrossItemResolver, ResolverState

__all__ = [
    "CrossItemResolver",
    "FragmentMerger",
    "MergedGraph",
    "ResolverState",
]
