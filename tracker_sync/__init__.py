"""Issue synchronization core for a phase-based grading tool"""

__version__ = "1.0.0"
