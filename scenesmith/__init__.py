"""Generate consistent character and scene images from a structured script."""

__version__ = "0.1.0"
