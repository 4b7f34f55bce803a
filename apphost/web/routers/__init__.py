# =============================================================================
# apphost/web/routers/ - Built-in Routers
# =============================================================================
# Routers every hosted application gets. Application routers come from
# api/modules/<name>/router.py.
# =============================================================================
