"""
SessionGuard Web API
====================
WSGI entry point. Configuration comes from SESSIONGUARD_* environment
variables; set SESSIONGUARD_DATABASE__URL to use PostgreSQL.
"""

import os

from sessionguard.web import create_app

# ============================================================
# ENTRY POINT
# ============================================================

app = create_app()
application = app

if __name__ == "__main__":
    app.run(host="0.0.0.0", port=int(os.environ.get("PORT", 5000)))
