"""Log de fallas de la flota."""

from typing import List

from fastapi import APIRouter, Depends

from monitor_engine.service import MonitoringService

from ..deps import get_service
from ..schemas import ErrorLogClearResult, ErrorLogEntryOut

router = APIRouter(prefix="/errors", tags=["errors"])


@router.get("", response_model=List[ErrorLogEntryOut])
def get_error_log(service: MonitoringService = Depends(get_service)):
    return [entry.to_dict() for entry in service.get_error_log()]


@router.delete("", response_model=ErrorLogClearResult)
def clear_error_log(service: MonitoringService = Depends(get_service)):
    return ErrorLogClearResult(removed=service.clear_error_log())
