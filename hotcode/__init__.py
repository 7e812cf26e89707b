"""Client-side hot code push for hybrid web applications."""

__version__ = "0.1.0"
