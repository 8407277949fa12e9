"""GitHub DORA metrics generator."""

__version__ = "0.1.0"
