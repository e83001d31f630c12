"""AdSource HTTP service: ad catalog and event endpoints."""
