"""
Analysis module - transcript pattern detection.
"""

from src.services.analysis.pattern_analyzer import ANALYSIS_PROMPT, PatternAnalyzer, parse_analysis

__all__ = ["ANALYSIS_PROMPT", "PatternAnalyzer", "parse_analysis"]
