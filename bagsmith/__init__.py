"""bagsmith — encrypted Chef data bags from a Trousseau secret store."""

__version__ = "0.1.0"
