"""
Static map renderer test suite

Structure:
- unit/: tests for individual components (URL resolver, archive store, adapters, dispatcher, viewport, engine)
- integration/: end-to-end renders and the HTTP service
- conftest.py: MBTiles archive and PNG tile fixtures
"""
