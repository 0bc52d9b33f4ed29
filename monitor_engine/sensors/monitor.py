"""Máquina de estados con histéresis por sensor.

Cada métrica (temperatura, vibración) tiene cuatro pistas de debounce
independientes: falla, warning, recuperación de warning ("healthy") y
recuperación de falla ("no-failure"). Un flag solo cambia después de N
muestras consecutivas en la condición correspondiente, y cada flag es un
latch: una vez activo no se vuelve a reportar hasta que se recupera.

Asimetría intencional en vibración:
- Entrar en warning/falla: basta con que UN eje supere el límite (OR).
- Recuperarse: TODOS los ejes deben estar por debajo a la vez (AND).

``ingest`` y ``evaluate`` se serializan con un lock por sensor; sensores
distintos pueden procesarse en paralelo.
"""

from __future__ import annotations

import logging
import numbers
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional

from ..buffer.ring_buffer import DEFAULT_CAPACITY, RingBuffer
from ..errors import ValidationError
from ..thresholds.calculator import ThresholdCalculator
from .models import (
    TIMESTAMP_FORMAT,
    ErrorCause,
    HysteresisConfig,
    LastError,
    LimitKind,
    Metric,
    SensorHealth,
    SensorReading,
    SensorThresholds,
    StatusBits,
)

logger = logging.getLogger(__name__)

_WARNING_CAUSES = {ErrorCause.VIBRATION_WARNING.value, ErrorCause.TEMPERATURE_WARNING.value}


@dataclass
class EvaluationResult:
    """Transiciones producidas por un tick de evaluación."""
    raised_failures: List[str] = field(default_factory=list)
    raised_warnings: List[str] = field(default_factory=list)
    cleared: List[str] = field(default_factory=list)

    @property
    def new_failure(self) -> bool:
        return bool(self.raised_failures)


class SensorMonitor:
    """Estado de monitoreo de un puerto de un gateway."""

    def __init__(
        self,
        sensor_id: str,
        device_id: str,
        label: Optional[str] = None,
        thresholds: Optional[SensorThresholds] = None,
        hysteresis: Optional[HysteresisConfig] = None,
        history_capacity: int = DEFAULT_CAPACITY,
        calculator: Optional[ThresholdCalculator] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.sensor_id = sensor_id
        self.device_id = device_id
        self.label = label or sensor_id
        self.thresholds = thresholds or SensorThresholds()
        self._hysteresis = hysteresis or HysteresisConfig()
        self._calculator = calculator or ThresholdCalculator()
        self._clock = clock
        self._lock = threading.RLock()

        # Contadores de muestras consecutivas
        self.vib_error_count = 0
        self.temp_error_count = 0
        self.vib_warning_count = 0
        self.temp_warning_count = 0
        self.vib_healthy_count = 0
        self.temp_healthy_count = 0
        self.vib_no_failure_count = 0
        self.temp_no_failure_count = 0

        # Latches
        self.temp_warning = False
        self.vib_warning = False
        self.temp_failure = False
        self.vib_failure = False

        self.last_error = LastError()
        self.last_reading: Optional[SensorReading] = None
        self.status_bits = StatusBits()

        self.temp_history: RingBuffer[float] = RingBuffer(history_capacity)
        self.vib_magnitude_history: RingBuffer[float] = RingBuffer(history_capacity)

    # ------------------------------------------------------------------
    # Configuración
    # ------------------------------------------------------------------

    @property
    def hysteresis(self) -> HysteresisConfig:
        return self._hysteresis

    def update_hysteresis(self, config: HysteresisConfig) -> None:
        with self._lock:
            self._hysteresis = config

    def rename(self, label: str) -> str:
        with self._lock:
            self.label = label
            return self.label

    def set_static_threshold(self, metric: Metric, kind: LimitKind, value) -> float:
        """Fija un límite a mano.

        Solo valida que sea numérico; el orden warning < failure lo valida
        quien llama (ver ``MonitoringService.set_thresholds``).
        """
        if isinstance(value, bool) or not isinstance(value, numbers.Real):
            raise ValidationError(f"{metric.value} {kind.value} limit must be numeric, got {value!r}")
        if value != value:
            raise ValidationError(f"{metric.value} {kind.value} limit is NaN")

        with self._lock:
            self.thresholds.set(Metric(metric), LimitKind(kind), float(value))
            return self.thresholds.get(Metric(metric), LimitKind(kind))

    def update_thresholds(
        self,
        updates: Dict[str, float],
        validate: Optional[Callable[[SensorThresholds], None]] = None,
    ) -> SensorThresholds:
        """Aplica varios límites de una vez; ``validate`` puede rechazar el conjunto."""
        with self._lock:
            candidate = SensorThresholds(**vars(self.thresholds))
            for name, value in updates.items():
                setattr(candidate, name, float(value))
            if validate is not None:
                validate(candidate)
            self.thresholds = candidate
            return SensorThresholds(**vars(candidate))

    def get_thresholds(self) -> SensorThresholds:
        with self._lock:
            return SensorThresholds(**vars(self.thresholds))

    def clear_warnings(self) -> None:
        """Resetea los latches de warning (acción manual del operador)."""
        with self._lock:
            self.vib_warning = False
            self.temp_warning = False
            self.vib_healthy_count = 0
            self.temp_healthy_count = 0
            if self.last_error.cause in _WARNING_CAUSES:
                self.last_error.clear()

    # ------------------------------------------------------------------
    # Ingesta
    # ------------------------------------------------------------------

    def ingest(self, reading: SensorReading) -> None:
        """Guarda la lectura y alimenta los historiales de umbral adaptativo."""
        with self._lock:
            self.last_reading = reading
            if reading.raw_alarm_bits:
                self.status_bits = StatusBits.from_raw(reading.raw_alarm_bits)

            self.temp_history.write(reading.temperature)
            self.vib_magnitude_history.write(reading.vibration_magnitude)

            if self.temp_history.is_full:
                pair = self._calculator.recompute(self.temp_history)
                if pair is not None:
                    self.thresholds.temp_warning = pair.warning
                    self.thresholds.temp_failure = pair.failure
                    logger.info(
                        "[MONITOR] Temperature thresholds recalculated device=%s sensor=%s "
                        "mean=%.3f std=%.3f warning=%.3f failure=%.3f",
                        self.device_id, self.sensor_id,
                        pair.mean, pair.std_dev, pair.warning, pair.failure,
                    )

            if self.vib_magnitude_history.is_full:
                pair = self._calculator.recompute(self.vib_magnitude_history)
                if pair is not None:
                    self.thresholds.vib_warning = pair.warning
                    self.thresholds.vib_failure = pair.failure
                    logger.info(
                        "[MONITOR] Vibration thresholds recalculated device=%s sensor=%s "
                        "mean=%.3f std=%.3f warning=%.3f failure=%.3f",
                        self.device_id, self.sensor_id,
                        pair.mean, pair.std_dev, pair.warning, pair.failure,
                    )

    # ------------------------------------------------------------------
    # Evaluación
    # ------------------------------------------------------------------

    def evaluate(self) -> bool:
        """Un tick de muestreo. True si se activó alguna falla nueva."""
        return self.evaluate_tick().new_failure

    def evaluate_tick(self) -> EvaluationResult:
        """Un tick de muestreo con el detalle de transiciones.

        Orden fijo: falla (vib, temp) → warning (vib, temp) → recuperación
        (vib-warning, temp-warning, vib-falla, temp-falla).
        """
        result = EvaluationResult()

        with self._lock:
            reading = self.last_reading
            if reading is None:
                return result

            thr = self.thresholds
            n_fail = self._hysteresis.samples_to_fail
            axes = (reading.velocity_x, reading.velocity_y, reading.velocity_z)
            temp = reading.temperature

            # 1-2. Fallas
            vib_bad = any(v >= thr.vib_failure for v in axes)
            self.vib_error_count = self.vib_error_count + 1 if vib_bad else 0
            if self.vib_error_count >= n_fail and not self.vib_failure:
                self.vib_failure = True
                self._record_error(ErrorCause.VIBRATION_ERROR)
                result.raised_failures.append(ErrorCause.VIBRATION_ERROR.value)

            temp_bad = temp >= thr.temp_failure
            self.temp_error_count = self.temp_error_count + 1 if temp_bad else 0
            if self.temp_error_count >= n_fail and not self.temp_failure:
                self.temp_failure = True
                self._record_error(ErrorCause.TEMPERATURE_ERROR)
                result.raised_failures.append(ErrorCause.TEMPERATURE_ERROR.value)

            # 3. Warnings (no tocan los latches de falla)
            vib_warn = any(v >= thr.vib_warning for v in axes)
            self.vib_warning_count = self.vib_warning_count + 1 if vib_warn else 0
            if self.vib_warning_count >= n_fail and not self.vib_warning:
                self.vib_warning = True
                self._record_warning(ErrorCause.VIBRATION_WARNING)
                result.raised_warnings.append(ErrorCause.VIBRATION_WARNING.value)

            temp_warn = temp >= thr.temp_warning
            self.temp_warning_count = self.temp_warning_count + 1 if temp_warn else 0
            if self.temp_warning_count >= n_fail and not self.temp_warning:
                self.temp_warning = True
                self._record_warning(ErrorCause.TEMPERATURE_WARNING)
                result.raised_warnings.append(ErrorCause.TEMPERATURE_WARNING.value)

            # 4. Recuperación: todos los ejes por debajo a la vez
            vib_healthy = all(v < thr.vib_warning for v in axes)
            vib_no_failure = all(v < thr.vib_failure for v in axes)
            temp_healthy = temp < thr.temp_warning
            temp_no_failure = temp < thr.temp_failure

            if self._heal("vib_healthy_count", "vib_warning", vib_healthy):
                result.cleared.append(ErrorCause.VIBRATION_WARNING.value)
            if self._heal("temp_healthy_count", "temp_warning", temp_healthy):
                result.cleared.append(ErrorCause.TEMPERATURE_WARNING.value)
            if self._heal("vib_no_failure_count", "vib_failure", vib_no_failure):
                result.cleared.append(ErrorCause.VIBRATION_ERROR.value)
            if self._heal("temp_no_failure_count", "temp_failure", temp_no_failure):
                result.cleared.append(ErrorCause.TEMPERATURE_ERROR.value)

        for cause in result.raised_failures:
            logger.warning(
                "[MONITOR] Failure latched device=%s sensor=%s cause=%s",
                self.device_id, self.sensor_id, cause,
            )
        for cause in result.cleared:
            logger.info(
                "[MONITOR] Recovered device=%s sensor=%s from=%s",
                self.device_id, self.sensor_id, cause,
            )
        return result

    def _heal(self, count_attr: str, flag_attr: str, good: bool) -> bool:
        # El contador de recuperación solo avanza mientras el flag está activo.
        if not getattr(self, flag_attr):
            setattr(self, count_attr, 0)
            return False

        count = getattr(self, count_attr) + 1 if good else 0
        if count >= self._hysteresis.samples_to_heal:
            setattr(self, flag_attr, False)
            setattr(self, count_attr, 0)
            self.last_error.clear()
            return True

        setattr(self, count_attr, count)
        return False

    def _record_error(self, cause: ErrorCause) -> None:
        self.last_error.cause = cause.value
        self.last_error.timestamp = self._clock().strftime(TIMESTAMP_FORMAT)

    def _record_warning(self, cause: ErrorCause) -> None:
        # Una falla activa conserva su causa en last_error.
        if self.vib_failure or self.temp_failure:
            return
        self._record_error(cause)

    # ------------------------------------------------------------------
    # Consultas
    # ------------------------------------------------------------------

    def health(self) -> SensorHealth:
        with self._lock:
            return SensorHealth(
                temp_warning=self.temp_warning,
                vib_warning=self.vib_warning,
                temp_failure=self.temp_failure,
                vib_failure=self.vib_failure,
            )

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "sensorId": self.sensor_id,
                "deviceId": self.device_id,
                "label": self.label,
                "health": self.health().to_dict(),
                "thresholds": self.thresholds.to_dict(),
                "lastError": self.last_error.to_dict(),
                "lastReading": self.last_reading.to_dict() if self.last_reading else None,
                "statusBits": {
                    "velocityMainAlarm": self.status_bits.velocity_main_alarm,
                    "velocityPreAlarm": self.status_bits.velocity_pre_alarm,
                    "tempMainAlarm": self.status_bits.temp_main_alarm,
                },
            }
