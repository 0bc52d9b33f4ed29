"""API HTTP del monitor de condición (FastAPI sobre MonitoringService)."""
