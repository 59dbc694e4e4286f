from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from trip_scheduler.api.deps import get_scheduler, verify_cron_secret
from trip_scheduler.services.reminder_scheduler import JOB_NAME, TripNotificationScheduler, job_lock

router = APIRouter()

@router.get("/trip-notifications", dependencies=[Depends(verify_cron_secret)])
async def run_trip_notifications(scheduler: TripNotificationScheduler = Depends(get_scheduler)):
    """Run one trip notification pass. Meant to be called by a cron job every ~15 minutes."""
    summary = await job_lock.run_exclusive(JOB_NAME, scheduler.run_once)
    if summary is None:
        return JSONResponse(status_code=409, content={"error": "Trip notification run already in progress"})
    payload = {"success": not summary.aborted, **summary.to_payload()}
    if summary.aborted:
        return JSONResponse(status_code=500, content=payload)
    return payload
