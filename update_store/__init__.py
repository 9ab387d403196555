"""Persistence layer for Telegram Bot API updates."""
