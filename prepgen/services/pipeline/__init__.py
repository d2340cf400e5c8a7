"""
Curriculum Generation Pipeline Package

Architecture:
- discovery.py: Input classification and candidate sources
- extraction.py: Two-step grounded job extraction
- research.py: Company/market research with basic-analysis fallback
- context.py: Unified personalization context (pure merge)
- generation.py: Round archetypes, round generation, demo round
- evaluation.py: Completeness scoring for the refinement loop
- llm_parser.py: Tolerant JSON parsing of model output
- orchestrator.py: Stage state machine and fast/slow passes
"""
