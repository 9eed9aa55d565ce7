"""Snapshot pipeline, storage and Telegram notifications."""
