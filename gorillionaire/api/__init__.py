from fastapi import APIRouter

from gorillionaire.api import access, activity, daily_quests, events, holders, realtime, referral, signals, social

api_router = APIRouter()
api_router.include_router(activity.router)
api_router.include_router(signals.router)
api_router.include_router(referral.router)
api_router.include_router(access.router)
api_router.include_router(events.router)
api_router.include_router(social.router)
api_router.include_router(social.discord_router)
api_router.include_router(realtime.router)
api_router.include_router(daily_quests.router)
api_router.include_router(holders.router)
