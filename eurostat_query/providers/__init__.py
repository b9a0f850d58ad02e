from .endpoints import ENDPOINTS, get_endpoint, list_endpoints
from .eurostat import EurostatProvider, ScanResult

__all__ = ["ENDPOINTS", "EurostatProvider", "ScanResult", "get_endpoint", "list_endpoints"]
