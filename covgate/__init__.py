"""Coverage regression gate and report publisher for CI pipelines."""

__version__ = "0.1.0"
