from fastapi import APIRouter, Depends, Request

from app.api.deps import get_takedown_service
from app.api.v1.schemas import TakedownCreate, TakedownRead, TakedownStepRead
from app.services.takedown import TakedownService, TakedownStep


router = APIRouter(tags=["takedowns"])


def _step_read(step: TakedownStep) -> TakedownStepRead:
    return TakedownStepRead(status=step.status.value, count=step.count, error=step.error)


@router.post("/takedowns", response_model=TakedownRead, status_code=202)
def submit_takedown(
    payload: TakedownCreate,
    request: Request,
    service: TakedownService = Depends(get_takedown_service),
):
    result = service.take_down(payload.place_id, reason=payload.reason)
    message = (
        "The comic and leaderboard entries for this place have been removed."
        if result.complete
        else "The takedown was only partly applied and will need a follow-up."
    )
    return TakedownRead(
        request_id=getattr(request.state, "request_id", None),
        place_id=result.place_id,
        complete=result.complete,
        cache=_step_read(result.cache),
        blob=_step_read(result.blob),
        leaderboard=_step_read(result.leaderboard),
        message=message,
    )
