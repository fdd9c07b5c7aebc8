from .coordinator import VerificationCoordinator
from .lifecycle import RecordLifecycleAPI
from .runtime import SupplyProvRuntime, create_record_store
from .settings import SupplyProvSettings, get_settings
from .tracing import InMemoryTraceSink, TraceSink, TraceSpan

__all__ = [
    "VerificationCoordinator",
    "RecordLifecycleAPI",
    "SupplyProvRuntime",
    "create_record_store",
    "SupplyProvSettings",
    "get_settings",
    "InMemoryTraceSink",
    "TraceSink",
    "TraceSpan",
]
