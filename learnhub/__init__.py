"""
LearnHub Assessment Core

This package implements the assessment engine of the LearnHub e-learning
platform: the session state machine, the answer evaluator with its AI-graded
strategies, the LLM gateway, and the result aggregator.
"""

__version__ = "0.1.0"
