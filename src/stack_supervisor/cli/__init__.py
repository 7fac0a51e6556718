"""Command-line entry points: ``run-stack`` and ``run-validation``."""
