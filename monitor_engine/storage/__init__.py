from .device_database import SqlDeviceDatabase, bucket_by_minute

__all__ = ["SqlDeviceDatabase", "bucket_by_minute"]
