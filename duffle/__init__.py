"""Local tooling for Cloud Native Application Bundles: workspace, credentials, digests and drivers."""

__version__ = "0.1.0"
__all__ = ["__version__"]