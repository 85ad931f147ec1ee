"""Console output, reporting and logging setup."""
