# ==============================================================================
# TEAMCRM - ASGI CONFIGURATION
# ==============================================================================
# Entry point for ASGI servers (Uvicorn, Daphne, Hypercorn)
#
# The application is plain request/response; no WebSocket routing.
# ==============================================================================

import os
from django.core.asgi import get_asgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')

application = get_asgi_application()
