"""
GT Shop backend
Orders for Growtopia currency and items, manual payment proof review and
Telegram approvals.
"""

from gtshop.app import create_app

__all__ = ["create_app"]
