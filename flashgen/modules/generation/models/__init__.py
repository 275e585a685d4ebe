from .flashcards import GeneratedFlashcard, GeneratedFlashcards

__all__ = [
    "GeneratedFlashcard",
    "GeneratedFlashcards",
]
