"""
Document Analysis Package
═════════════════════════

  engine.py     AnalysisEngine — remote inference, two-stage validation, fallback
  simulated.py  SimulatedAnalyzer — deterministic keyword/sentiment heuristics
  prompts.py    Prompt template sent to the completion provider
"""

from docinsight.analysis.engine import AnalysisEngine, decode_raw_analysis, validate_analysis
from docinsight.analysis.simulated import SimulatedAnalyzer

__all__ = [
    "AnalysisEngine",
    "SimulatedAnalyzer",
    "decode_raw_analysis",
    "validate_analysis",
]
