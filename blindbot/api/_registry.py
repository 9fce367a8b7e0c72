"""
Centralized router registry for all API endpoints
"""
from . import chat, stats

ROUTERS = [
    chat.router,
    stats.router,
]
