"""Growth opportunity job: thin adapter over the detector's success flag."""

from typing import Any, Dict

from ..services.growth import detect_growth_opportunities
from .base import JobContext


def run_growth_opportunities(ctx: JobContext) -> Dict[str, Any]:
    result = detect_growth_opportunities(ctx.db, ctx.now)
    fields = {k: v for k, v in result.items() if k != "success"}
    return {"status": "success" if result["success"] else "partial", **fields}
