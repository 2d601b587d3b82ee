from fastapi import APIRouter, Depends

from courier_dispatch.auth.dependencies import AuthContext, require_admin
from courier_dispatch.observability import metrics_store
from courier_dispatch.schemas.ops import MetricsResponse, TimingMetricStats

router = APIRouter(prefix="/metrics", tags=["metrics"])


@router.get("", summary="In-process counters and timings", response_model=MetricsResponse)
def metrics_endpoint(_auth: AuthContext = Depends(require_admin)) -> MetricsResponse:
    snapshot = metrics_store.snapshot()
    return MetricsResponse(
        counters=snapshot.counters,
        timings={
            name: TimingMetricStats(
                count=int(stats["count"]),
                avg_s=stats["avg_s"],
                max_s=stats["max_s"],
            )
            for name, stats in snapshot.timings.items()
        },
    )
