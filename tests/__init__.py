# =============================================================================
# tests/ - Test Suite
# =============================================================================
# This package contains all tests for the application host:
# - test_application.py: Lifecycle, patches and cron mode on the sample app
# - test_web_server.py: Web mode over real HTTP
# - test_websocket.py: Realtime bridge and connection manager
# - test_config.py, test_modules.py, test_patches.py: Core components
# - fixtures/sample_app/: Application directory used by the tests
#
# Run tests with: pytest
# =============================================================================
