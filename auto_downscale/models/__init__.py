from .workload import DiscoveredResources, Workload, WorkloadKind
from .service_state import ServiceRedirectState

__all__ = ["DiscoveredResources", "Workload", "WorkloadKind", "ServiceRedirectState"]
