"""Backend core for the pgstudio PostgreSQL client."""

__version__ = "0.1.0"

__all__ = ["__version__"]
