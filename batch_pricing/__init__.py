"""Purchase order to inventory batch price propagation."""

__version__ = "1.0.0"
