"""Relay signaling and session-orchestration service."""
