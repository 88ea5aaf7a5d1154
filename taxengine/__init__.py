"""TaxEngine API: UK R&D tax-credit claim processing backend."""

__version__ = "1.0.0"
