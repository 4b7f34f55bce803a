# =============================================================================
# apphost/__main__.py - python -m apphost
# =============================================================================

from apphost.cli import main

main()
