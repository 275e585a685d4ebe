"""Generation module exports."""

from .models.flashcards import GeneratedFlashcard, GeneratedFlashcards
from .generator import FlashcardGenerator, generate_flashcards, postprocess

__all__ = [
    "GeneratedFlashcard",
    "GeneratedFlashcards",
    "FlashcardGenerator",
    "generate_flashcards",
    "postprocess",
]
