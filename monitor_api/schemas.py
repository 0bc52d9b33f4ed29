from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class SensorHealthOut(_CamelModel):
    temp_warning: bool = Field(alias="tempWarning")
    vib_warning: bool = Field(alias="vibWarning")
    temp_failure: bool = Field(alias="tempFailure")
    vib_failure: bool = Field(alias="vibFailure")


class ThresholdsOut(_CamelModel):
    vib_failure: float = Field(alias="vibFailureLimit")
    vib_warning: float = Field(alias="vibWarningLimit")
    temp_failure: float = Field(alias="tempFailureLimit")
    temp_warning: float = Field(alias="tempWarningLimit")


class ThresholdsUpdate(_CamelModel):
    # Todos opcionales: se valida el conjunto resultante en el servicio.
    vib_failure: Optional[float] = Field(default=None, alias="vibFailureLimit")
    vib_warning: Optional[float] = Field(default=None, alias="vibWarningLimit")
    temp_failure: Optional[float] = Field(default=None, alias="tempFailureLimit")
    temp_warning: Optional[float] = Field(default=None, alias="tempWarningLimit")


class SensorRename(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)


class GeneralSettings(_CamelModel):
    samples_to_fail: int = Field(alias="samplesToFail")
    samples_to_heal: int = Field(alias="samplesToHeal")
    evaluation_interval_ms: int = Field(alias="evaluationIntervalMs")


class GeneralSettingsUpdate(_CamelModel):
    samples_to_fail: Optional[int] = Field(default=None, ge=1, alias="samplesToFail")
    samples_to_heal: Optional[int] = Field(default=None, ge=1, alias="samplesToHeal")
    evaluation_interval_ms: Optional[int] = Field(default=None, ge=1, alias="evaluationIntervalMs")


class ErrorLogEntryOut(_CamelModel):
    device_id: str = Field(alias="deviceId")
    sensor_id: str = Field(alias="sensorId")
    area: str
    cause: str
    timestamp: str


class ErrorLogClearResult(BaseModel):
    removed: int


class DeviceHealthOut(_CamelModel):
    warning_state: bool = Field(alias="warningState")
    failure_state: bool = Field(alias="failureState")


class DeviceSummary(BaseModel):
    id: str
    area: str
    address: str
    description: str = ""
    state: str


class DeviceInfo(DeviceSummary):
    model_config = ConfigDict(populate_by_name=True)

    enabled_ports: List[str] = Field(default_factory=list, alias="enabledPorts")
    sensors: Dict[str, str] = Field(default_factory=dict)


class DeviceCreate(BaseModel):
    id: str = Field(..., min_length=1)
    area: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)
    description: str = ""


class DeviceCreateResult(BaseModel):
    id: str
    state: str


class AggregatePointOut(_CamelModel):
    time: str
    mean_temp: Optional[float] = Field(default=None, alias="meanTemp")
    mean_vib_x: Optional[float] = Field(default=None, alias="meanVibX")
    mean_vib_y: Optional[float] = Field(default=None, alias="meanVibY")
    mean_vib_z: Optional[float] = Field(default=None, alias="meanVibZ")
