"""patternlife - Pattern lifecycle engine.

Captures observations of offered patterns, clusters unmatched behaviour
into new patterns, scores them over time and graduates them through
tenant-scoping levels.
"""

__version__ = "0.1.0"
