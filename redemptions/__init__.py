from .models import RedemptionMethod, RedemptionRequest, RedemptionStatus
from .service import RedemptionService

__all__ = [
    "RedemptionMethod",
    "RedemptionRequest",
    "RedemptionService",
    "RedemptionStatus",
]
