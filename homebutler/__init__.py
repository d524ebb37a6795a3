"""homebutler: homelab monitoring over SSH."""

__version__ = "0.1.0"
