"""ispedge: locate the provider-edge hop of your Internet connection."""

__version__ = "0.1.0"
