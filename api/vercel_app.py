"""
WSGI entry point for serverless deployment.

Builds the enrollment API once per worker; sessions then live in that
worker's memory with their snapshots in Redis.
"""

import os
from app import create_app

app = create_app()

if __name__ == "__main__":
    app.run(debug=False, host="0.0.0.0", port=int(os.environ.get("PORT", 5000)))
