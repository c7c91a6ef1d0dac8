from fastapi import APIRouter, Depends

from deps import AuthContext, Services, get_services, require_auth
from logging_config import get_logger

logger = get_logger(__name__)

admin_router = APIRouter(prefix="/admin", tags=["admin"])


@admin_router.post("/presence/cleanup")
async def cleanup_presence(auth: AuthContext = Depends(require_auth), services: Services = Depends(get_services)):
    updated = await services.rooms.cleanup_presence(auth.username)
    logger.info(f"Presence cleanup by {auth.username} updated {updated} rooms")
    return {"success": True, "message": f"Cleaned up presence for {updated} rooms", "roomsUpdated": updated}


@admin_router.post("/presence/reset")
async def reset_user_counts(auth: AuthContext = Depends(require_auth), services: Services = Depends(get_services)):
    reset = await services.rooms.reset_user_counts(auth.username)
    logger.info(f"User counts reset by {auth.username} for {reset} rooms")
    return {"success": True, "message": f"Reset user counts for {reset} rooms", "roomsReset": reset}


@admin_router.get("/presence")
async def debug_presence(auth: AuthContext = Depends(require_auth), services: Services = Depends(get_services)):
    return await services.rooms.debug_presence(auth.username)
