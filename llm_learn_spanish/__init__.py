"""
LLM Learn Spanish Plugin

A plugin for learning Spanish vocabulary with spaced repetition, three-round
quizzes and AI-based word analysis.
"""

from . import db
from . import scheduler
from . import exercises
from . import session
from . import store
from . import structured
from . import plugin

__version__ = "0.1.0"
__all__ = ["db", "scheduler", "exercises", "session", "store", "structured", "plugin"]
