"""Point-in-time resource inventory of Kubernetes clusters with mesh sidecars."""

__version__ = "1.0.0"
