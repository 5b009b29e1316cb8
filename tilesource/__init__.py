"""
Tile source resolution for the static map renderer.

- Resolves mbtiles://<service>/{z}/{x}/{y} URLs against a directory of .mbtiles archives
- Answers source metadata (TileJSON) and tile lookups from local archives
- Fetches tiles from remote HTTP tile services
- Routes engine-issued requests to the right backend (RequestDispatcher)
"""
