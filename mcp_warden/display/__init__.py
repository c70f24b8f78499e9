"""Console and log output helpers."""
