"""Realtime signal counters with persistence and live dashboard push."""
