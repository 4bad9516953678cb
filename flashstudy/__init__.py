"""flashstudy: spaced-repetition review and optimistic sync for flashcard projects."""

__version__ = "0.1.0"
