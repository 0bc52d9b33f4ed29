"""Ingesta de lecturas en vivo.

- payload.py: Validación de mensajes del feed (pydantic)
- dispatcher.py: Colas acotadas por partición de sensor
"""

from .dispatcher import ReadingDispatcher
from .payload import ValidationResult, parse_feed_message

__all__ = ["ReadingDispatcher", "ValidationResult", "parse_feed_message"]
