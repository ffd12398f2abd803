"""HTTP and WebSocket surface of the voxrelay server."""
