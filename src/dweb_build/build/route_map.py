"""Route tables: logical URL path to artifact reference.

Every FileMap source under the routes root or the API root becomes
a route. The API root may nest inside the routes root (the default,
``routes/api``) or sit beside it; a file under the API root is always an
API route.

Page routes:
- ``routes/index.tsx`` -> ``/``
- ``routes/blog/index.tsx`` -> ``/blog/``
- ``routes/about.tsx`` -> ``/about``
- ``routes/_layout.tsx`` -> ``/_layout``

API routes are ``/api/<path below the API root>``, extension stripped.
"""

from __future__ import annotations

import json
from pathlib import Path, PurePosixPath

import structlog

from dweb_build.build.file_map import FileMap
from dweb_build.build.models import CLIENT_KEY_SUFFIX, RouteMaps, Target

logger = structlog.get_logger(__name__)

ROUTE_EXTENSIONS = (".ts", ".tsx")
SERVER_ROUTES_FILE = "server.json"
CLIENT_ROUTES_FILE = "client.json"


class RouteMapGenerator:
    """Derive and write ``server.json`` and ``client.json``.

    Args:
        cwd: Project root that relative FileMap keys and directories are
            resolved against.
    """

    def __init__(self, cwd: Path) -> None:
        self.cwd = cwd
        self._log = logger.bind(component="route_map")

    def _resolve(self, path: str | Path) -> Path:
        candidate = Path(path)
        return candidate if candidate.is_absolute() else self.cwd / candidate

    def derive_route(
        self,
        source: str,
        routes_dir: str | Path,
        api_dir: str | Path | None = None,
    ) -> str | None:
        """Return the logical route of a source, or None if it is not a route.

        Args:
            source: FileMap key (relative to cwd, or absolute).
            routes_dir: Routes root.
            api_dir: API root. Defaults to ``<routes_dir>/api``.

        Example:
            >>> generator = RouteMapGenerator(Path("/app"))
            >>> generator.derive_route("routes/blog/index.tsx", "routes")
            '/blog/'
            >>> generator.derive_route("routes/api/users.ts", "routes", "routes/api")
            '/api/users'
        """
        if not source.endswith(ROUTE_EXTENSIONS):
            return None

        path = self._resolve(source)
        routes_root = self._resolve(routes_dir)
        api_root = self._resolve(api_dir) if api_dir is not None else routes_root / "api"

        if path != api_root and path.is_relative_to(api_root):
            relative = PurePosixPath(path.relative_to(api_root).as_posix()).with_suffix("")
            return f"/api/{relative}"

        if path != routes_root and path.is_relative_to(routes_root):
            relative = PurePosixPath(path.relative_to(routes_root).as_posix()).with_suffix("")
            if relative.name == "index":
                parent = relative.parent.as_posix()
                return "/" if parent == "." else f"/{parent}/"
            return f"/{relative}"

        return None

    def generate(
        self,
        file_map: FileMap,
        routes_dir: str | Path,
        out_dir: Path,
        api_dir: str | Path | None = None,
    ) -> RouteMaps:
        """Build both route tables and write them under ``out_dir``.

        A server reference also pulls in the source's ``.client`` companion;
        a source compiled for the client only lands in the client table.
        """
        route_maps = RouteMaps()

        for key, reference in file_map.items():
            source = key.removesuffix(CLIENT_KEY_SUFFIX)
            if source != key and file_map.get(source, Target.SERVER) is not None:
                # Picked up through its server companion
                continue

            route = self.derive_route(source, routes_dir, api_dir)
            if route is None:
                continue

            if reference.startswith(Target.SERVER.prefix):
                route_maps.server[route] = reference
                client_reference = file_map.get(source, Target.CLIENT)
                if client_reference and client_reference.startswith(Target.CLIENT.prefix):
                    route_maps.client[route] = client_reference
            elif reference.startswith(Target.CLIENT.prefix):
                route_maps.client[route] = reference

        out_dir.mkdir(parents=True, exist_ok=True)
        (out_dir / SERVER_ROUTES_FILE).write_text(
            json.dumps(route_maps.server, indent=2), encoding="utf-8"
        )
        (out_dir / CLIENT_ROUTES_FILE).write_text(
            json.dumps(route_maps.client, indent=2), encoding="utf-8"
        )

        self._log.info(
            "route_maps_written",
            server_routes=len(route_maps.server),
            client_routes=len(route_maps.client),
        )
        return route_maps
