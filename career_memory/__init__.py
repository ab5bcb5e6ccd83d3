"""Career Memory Kernel — capture, refine and synthesize a personal record of work activity."""

__version__ = "0.1.0a0"
