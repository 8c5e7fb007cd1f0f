"""merkledrop — periodic Merkle-proof token distribution with a fixed supply."""

__version__ = "0.1.0"
