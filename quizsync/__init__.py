"""QuizSync: a polling-synchronised classroom quiz."""

__version__ = "0.1.0"
