"""eipbot - proposal numbering, preamble normalization and pull request merge automation."""

__version__ = "0.1.0"
