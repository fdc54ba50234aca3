"""Concrete models shipped with the package."""
