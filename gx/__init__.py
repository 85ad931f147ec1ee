"""gx: fan out git and GitHub changes across many repositories."""

__version__ = "0.1.0"
