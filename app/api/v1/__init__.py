"""Version 1 HTTP endpoints, mounted under /api by app.api.routes.mount_api."""
