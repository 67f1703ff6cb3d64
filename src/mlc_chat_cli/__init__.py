"""Interactive command line chat for compiled MLC language models."""

__version__ = "0.1.0"
