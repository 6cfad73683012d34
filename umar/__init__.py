"""
UMAR: AI voice roleplay trainer for customer-service agents.

The trainee talks to a simulated customer persona. Speech is detected,
transcribed, answered in persona by an LLM and spoken back; at the end the
transcript is handed off for evaluation.
"""

__version__ = "1.0.0"

# Main entry points
from .training.orchestrator import TrainingOrchestrator
from .infrastructure.data import Utterance, SessionHandoff, Scenario

__all__ = ["TrainingOrchestrator", "Utterance", "SessionHandoff", "Scenario"]
