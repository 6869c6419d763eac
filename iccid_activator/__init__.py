"""Prepaid SIM activation automation driven by ICCID lists."""

__version__ = "1.0.0"
