"""Mirror econ images out of the CS2 depot and publish them as a CDN manifest."""

__version__ = "0.1.0"
