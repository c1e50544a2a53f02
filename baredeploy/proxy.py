"""
nginx reverse proxy configuration.

A single site file is managed on the host. Installing it always replaces the
previous one, and nothing is reloaded unless ``nginx -t`` accepts the result.
"""

import logging
import shlex

from .analyzer.profile import RuntimeKind, RuntimeProfile
from .exceptions import ProvisioningFailure
from .recipes.base import InstallPlan
from .remote.executor import RemoteExecutor

logger = logging.getLogger(__name__)

SITE_NAME = "baredeploy.conf"
SITES_AVAILABLE = "/etc/nginx/sites-available"
SITES_ENABLED = "/etc/nginx/sites-enabled"
DEFAULT_SITE = f"{SITES_ENABLED}/default"
SSL_DIR = "/etc/nginx/ssl"

TLS_README = """\
This directory is reserved for TLS certificates of the site managed by baredeploy.

To enable HTTPS with Let's Encrypt:

  sudo apt-get install -y certbot python3-certbot-nginx   # or: sudo yum install -y certbot python3-certbot-nginx
  sudo certbot --nginx -d your.domain.example

or place fullchain.pem / privkey.pem here and uncomment the ssl_* lines in
/etc/nginx/sites-available/baredeploy.conf, then run:

  sudo nginx -t && sudo systemctl reload nginx
"""

_COMMON = """\
    # TLS placeholder: see /etc/nginx/ssl/README
    # listen 443 ssl;
    # ssl_certificate     /etc/nginx/ssl/fullchain.pem;
    # ssl_certificate_key /etc/nginx/ssl/privkey.pem;

    add_header X-Frame-Options "DENY" always;
    add_header X-Content-Type-Options "nosniff" always;
    add_header X-XSS-Protection "1; mode=block" always;
"""


def site_available_path() -> str:
    return f"{SITES_AVAILABLE}/{SITE_NAME}"


def site_enabled_path() -> str:
    return f"{SITES_ENABLED}/{SITE_NAME}"


def render(profile: RuntimeProfile, port: int, project_dir: str, server_name: str = "_") -> str:
    """
    Render the site for a runtime: static files from ``project_dir`` for static
    sites, a reverse proxy to ``127.0.0.1:<port>`` for everything else.
    """
    if profile.kind == RuntimeKind.STATIC:
        location = f"""\
    root {project_dir};
    index index.html index.htm;

    location / {{
        try_files $uri $uri/ =404;
    }}
"""
    else:
        location = f"""\
    location / {{
        proxy_pass http://127.0.0.1:{port};
        proxy_http_version 1.1;
        proxy_set_header Host $host;
        proxy_set_header X-Real-IP $remote_addr;
        proxy_set_header X-Forwarded-For $proxy_add_x_forwarded_for;
        proxy_set_header X-Forwarded-Proto $scheme;
        proxy_set_header Upgrade $http_upgrade;
        proxy_set_header Connection "upgrade";
        proxy_read_timeout 60s;
    }}
"""

    return f"""\
# Managed by baredeploy. Changes are overwritten on the next deployment.
server {{
    listen 80;
    server_name {server_name};

{_COMMON}
{location}}}
"""


def install_plan() -> InstallPlan:
    return InstallPlan(
        binary="nginx",
        version_command="nginx -v 2>&1",
        steps={
            "apt": (
                "sudo apt-get update -y",
                "sudo DEBIAN_FRONTEND=noninteractive apt-get install -y nginx",
                "sudo systemctl enable --now nginx",
            ),
            "yum": (
                "sudo yum install -y epel-release || true",
                "sudo yum install -y nginx",
                "sudo systemctl enable --now nginx",
            ),
        },
    )


class ProxyConfigurator:
    """Installs, reloads and removes the managed nginx site."""

    def __init__(self, executor: RemoteExecutor):
        self.executor = executor

    def validate(self) -> bool:
        result = self.executor.run("sudo nginx -t")
        if not result.ok:
            logger.error(f"nginx -t rejected the configuration:\n{result.tail()}")
        return result.ok

    def install(self, site_text: str) -> None:
        """
        Replace the managed site and enable it.

        Raises:
            ProvisioningFailure: If a step fails or ``nginx -t`` rejects the result
        """
        available = site_available_path()
        enabled = site_enabled_path()

        # RHEL-family nginx only includes conf.d; make the Debian layout available
        self.executor.check(
            f"sudo mkdir -p {SITES_AVAILABLE} {SITES_ENABLED}",
            what="creating nginx site directories",
        )
        self.executor.run(
            "grep -q 'sites-enabled' /etc/nginx/nginx.conf || "
            "sudo sed -i '/http {/a \\    include /etc/nginx/sites-enabled/*;' /etc/nginx/nginx.conf"
        )

        self.executor.write_file(available, site_text)
        self.executor.check(f"sudo ln -sf {available} {enabled}", what="enabling nginx site")
        if self.executor.exists(DEFAULT_SITE):
            logger.info("Disabling the default nginx site")
            self.executor.check(f"sudo rm -f {DEFAULT_SITE}", what="disabling default nginx site")

        if not self.validate():
            raise ProvisioningFailure("nginx rejected the generated site configuration (nginx -t failed)")

    def reload(self) -> None:
        self.executor.check("sudo systemctl reload nginx", what="nginx reload")

    def remove(self) -> bool:
        """
        Delete the managed site and reload nginx if the remaining config is valid.

        Returns:
            True when nginx was reloaded
        """
        self.executor.run(f"sudo rm -f {site_enabled_path()} {site_available_path()}")
        if not self.validate():
            logger.warning("nginx configuration invalid after removing the site, not reloading")
            return False
        return self.executor.run("sudo systemctl reload nginx").ok

    def is_active(self) -> bool:
        output = self.executor.run("systemctl is-active nginx").output.strip()
        return bool(output) and output.splitlines()[-1].strip() == "active"

    def prepare_tls_placeholder(self) -> bool:
        """
        Create /etc/nginx/ssl with a README on first use.

        Returns:
            True when the placeholder was created, False when it already existed
        """
        readme = f"{SSL_DIR}/README"
        if self.executor.exists(readme):
            return False
        self.executor.check(f"sudo mkdir -p {shlex.quote(SSL_DIR)}", what="creating TLS directory")
        self.executor.write_file(readme, TLS_README)
        return True

