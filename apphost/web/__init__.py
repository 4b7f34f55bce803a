# =============================================================================
# apphost/web/ - HTTP and Realtime Layer
# =============================================================================
# Started by the Application in web mode:
# - server.py: FastAPI app factory and embedded uvicorn server
# - routers/: built-in endpoints (health checks)
# - websocket/: realtime bridge and connection manager
#
# The web layer is thin - it handles HTTP concerns; business logic lives in
# the hosted application's services.
# =============================================================================
