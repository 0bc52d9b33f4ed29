"""Motor de monitoreo de condición de una flota de gateways IO-Link.

Estructura:
- buffer/       → RingBuffer de historial
- thresholds/   → Umbrales adaptativos por z-score
- sensors/      → SensorMonitor (histéresis por sensor)
- devices/      → Gateways y catálogo
- connection/   → Ciclo de conexión y reintentos
- scheduling/   → Timers, scheduler de evaluación y log de errores
- ingestion/    → Validación y despacho de lecturas en vivo
- transports/   → Feed MQTT
- storage/      → Base de series temporales (SQLAlchemy)
- service.py    → Fachada que consume la API
"""
