"""HTTP API: resolution endpoint, relay sinks and bid submission"""
from maskbid.api.app import create_app

__all__ = ["create_app"]
