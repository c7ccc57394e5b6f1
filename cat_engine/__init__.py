"""
Computerized Adaptive Testing engine.

Selects the next item for an exam session and re-estimates the participant's
ability after each response using Item Response Theory.
"""

__version__ = "0.1.0"
