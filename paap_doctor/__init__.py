"""Schema inference and analytics for public procurement plans (PAAP) and CPV registries."""

__version__ = "0.1.0"
