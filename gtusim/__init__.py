"""Assembler, instruction parser, memory, CPU and simulator for the GTU-C312 teaching CPU."""

__version__ = "0.1.0"
__all__ = ["__version__"]