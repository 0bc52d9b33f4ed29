"""Umbrales adaptativos por z-score.

Cuando el historial de un sensor se llena se calcula media y desviación
estándar poblacional, y los límites pasan a ser:

    warning = media + Z_WARNING * std
    failure = media + Z_FAILURE * std

El buffer se vacía después de cada cálculo: cada ciclo usa una ventana
nueva, no una ventana deslizante.

IMPORTANTE: el resultado REEMPLAZA cualquier límite estático cargado por
un operador. Un umbral configurado a mano dura hasta que el historial
correspondiente vuelve a llenarse.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from statistics import fmean, pstdev
from typing import Optional

from ..buffer.ring_buffer import RingBuffer

logger = logging.getLogger(__name__)

Z_WARNING = 2.0
Z_FAILURE = 3.0


@dataclass(frozen=True)
class ThresholdPair:
    """Par warning/failure calculado para una métrica."""
    warning: float
    failure: float
    mean: float
    std_dev: float
    samples: int


def value_from_z_score(z_score: float, mean: float, std_dev: float) -> float:
    return mean + z_score * std_dev


class ThresholdCalculator:
    """Calcula umbrales a partir de un RingBuffer lleno."""

    def __init__(self, z_warning: float = Z_WARNING, z_failure: float = Z_FAILURE) -> None:
        self.z_warning = float(z_warning)
        self.z_failure = float(z_failure)

    def recompute(self, buffer: RingBuffer[float]) -> Optional[ThresholdPair]:
        """Devuelve los nuevos umbrales y vacía el buffer.

        Si el buffer todavía no está lleno no hace nada y devuelve None.
        """
        if not buffer.is_full:
            return None

        values = buffer.items()
        mean = fmean(values)
        std_dev = pstdev(values, mu=mean)

        pair = ThresholdPair(
            warning=value_from_z_score(self.z_warning, mean, std_dev),
            failure=value_from_z_score(self.z_failure, mean, std_dev),
            mean=mean,
            std_dev=std_dev,
            samples=len(values),
        )

        buffer.clear()
        return pair
