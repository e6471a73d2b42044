"""tsgraph: dependency graphs, simplified export types and complexity metrics for TypeScript."""

__version__ = "0.3.0"
