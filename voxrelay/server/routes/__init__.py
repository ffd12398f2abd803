"""API routers: health, realtime sockets, and the HTTP polling fallback."""
