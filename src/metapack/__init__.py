"""metapack - install versioned metadata packages and check them for conflicts."""

__version__ = "0.1.0"
