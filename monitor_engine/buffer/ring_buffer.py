"""Buffer circular de capacidad fija.

FIFO acotado: el orden de lectura es exactamente el orden de escritura.
Una vez lleno rechaza escrituras hasta que alguien lo vacíe con ``clear()``
(no sobrescribe lo más viejo, a diferencia de ``deque(maxlen=...)``).
"""

from __future__ import annotations

from typing import Generic, List, Optional, TypeVar

from ..errors import BufferEmptyError, BufferFullError

T = TypeVar("T")

DEFAULT_CAPACITY = 50


class RingBuffer(Generic[T]):
    """Buffer circular con punteros head/tail.

    - ``write`` escribe en head y avanza head módulo capacidad.
    - ``read_oldest`` lee en tail y avanza tail.
    - Lleno cuando head alcanza a tail tras una escritura.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._capacity = int(capacity)
        self._slots: List[Optional[T]] = [None] * self._capacity
        self._head = 0
        self._tail = 0
        self._is_empty = True
        self._is_full = False

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def is_empty(self) -> bool:
        return self._is_empty

    @property
    def is_full(self) -> bool:
        return self._is_full

    def __len__(self) -> int:
        if self._is_full:
            return self._capacity
        return (self._head - self._tail) % self._capacity

    def write(self, value: T) -> None:
        """Añade un valor.

        Raises:
            BufferFullError: si el buffer está lleno (no modifica el estado).
        """
        if self._is_full:
            raise BufferFullError(self._capacity)

        self._slots[self._head] = value
        self._head = (self._head + 1) % self._capacity
        self._is_empty = False

        if self._head == self._tail:
            self._is_full = True

    def read_oldest(self) -> T:
        """Extrae el valor más antiguo.

        Raises:
            BufferEmptyError: si no hay valores.
        """
        if self._is_empty:
            raise BufferEmptyError()

        value = self._slots[self._tail]
        self._slots[self._tail] = None
        self._tail = (self._tail + 1) % self._capacity
        self._is_full = False

        if self._tail == self._head:
            self._is_empty = True

        return value  # type: ignore[return-value]

    def items(self) -> List[T]:
        """Contenido en orden de inserción, sin consumirlo."""
        return [
            self._slots[(self._tail + i) % self._capacity]  # type: ignore[misc]
            for i in range(len(self))
        ]

    def clear(self) -> None:
        self._slots = [None] * self._capacity
        self._head = 0
        self._tail = 0
        self._is_empty = True
        self._is_full = False
