"""specgraph: index API specifications into a queryable node/relationship graph."""

__version__ = "0.1.0"
