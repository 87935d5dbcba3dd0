"""Keep per-branch build configurations in sync with a template."""

__version__ = "0.1.0"
