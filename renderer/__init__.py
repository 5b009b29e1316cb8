"""
Static map renderer

- render(style, width, height, center/zoom or bounds) -> encoded image bytes
- Viewport fitting from bounds (derive_viewport)
- Default raster compositing engine (RasterTileEngine)
- HTTP service: POST /render, GET /health
"""
