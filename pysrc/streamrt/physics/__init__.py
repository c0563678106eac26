"""Radiometric helper functions."""

from .planck import planck, rayleigh_jeans_temperature, stokes_planck

__all__ = ["planck", "rayleigh_jeans_temperature", "stokes_planck"]
