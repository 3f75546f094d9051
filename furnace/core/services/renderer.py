"""
Config renderer — recipe + PHP socket → web server configuration text.

Rendering is a pure function: identical inputs always give
byte-identical output, so re-running ``serve`` without changes leaves
every file exactly as it was.
"""

from __future__ import annotations

from pathlib import Path

from furnace.core.models.recipe import Recipe

# Rendered in place of a PHP-FPM socket that could not be resolved,
# keeping the config syntactically valid
UNRESOLVED_SOCKET = "/tmp/furnace-php-unresolved.sock"

DEFAULT_LISTEN_PORT = 80
DEFAULT_FASTCGI_PARAMS = "fastcgi_params"


# ── Templates ───────────────────────────────────────────────────


_NGINX_SERVER = """\
# Managed by Furnace for recipe '{name}'. Local changes are overwritten.
server {{
    listen {listen_port};
    server_name {site};
    root {document_root};

    index index.php index.html;

    access_log {logs_dir}/{name}.access.log;
    error_log {logs_dir}/{name}.error.log;

    location / {{
        try_files $uri $uri/ /index.php?$query_string;
    }}

    location ~ \\.php$ {{
        include {fastcgi_params};
        fastcgi_pass unix:{socket};
        fastcgi_param SCRIPT_FILENAME $document_root$fastcgi_script_name;
        fastcgi_index index.php;
    }}
}}
"""

_APACHE_VHOST = """\
# Managed by Furnace for recipe '{name}'. Local changes are overwritten.
<VirtualHost *:{listen_port}>
    ServerName {site}
    DocumentRoot "{document_root}"

    <Directory "{document_root}">
        AllowOverride All
        Require all granted
    </Directory>

    <FilesMatch \\.php$>
        SetHandler "proxy:unix:{socket}|fcgi://localhost/"
    </FilesMatch>

    ErrorLog "{logs_dir}/{name}.error.log"
    CustomLog "{logs_dir}/{name}.access.log" combined
</VirtualHost>
"""

_TEMPLATES = {
    "nginx": _NGINX_SERVER,
    "apache": _APACHE_VHOST,
}


def render(
    recipe: Recipe,
    socket_path: str | Path | None,
    backend_kind: str,
    logs_dir: str | Path,
    *,
    listen_port: int = DEFAULT_LISTEN_PORT,
    fastcgi_params: str = DEFAULT_FASTCGI_PARAMS,
) -> str:
    """Render the site configuration of one recipe for one backend.

    Args:
        recipe: The recipe to serve.
        socket_path: PHP-FPM socket requests are forwarded to. None
            renders the ``UNRESOLVED_SOCKET`` sentinel.
        backend_kind: ``nginx`` or ``apache``.
        logs_dir: Directory for the per-recipe access/error logs.
        listen_port: Port the site listens on.
        fastcgi_params: Path of nginx's ``fastcgi_params`` include.

    Raises:
        ValueError: If ``backend_kind`` is not a known backend.
    """
    template = _TEMPLATES.get(backend_kind)
    if template is None:
        raise ValueError(
            f"Unknown backend '{backend_kind}'. Valid: {', '.join(sorted(_TEMPLATES))}"
        )

    return template.format(
        name=recipe.name,
        site=recipe.site,
        document_root=recipe.document_root,
        logs_dir=str(logs_dir),
        socket=str(socket_path) if socket_path else UNRESOLVED_SOCKET,
        listen_port=listen_port,
        fastcgi_params=fastcgi_params,
    )
