"""
PHP recipe: php-fpm/cli packages (ondrej PPA on Debian/Ubuntu), composer
dependencies, the built-in server under systemd.
"""

from typing import List, Optional

from ..analyzer.profile import DEFAULT_VERSIONS, RuntimeKind, RuntimeProfile
from ..analyzer.walk import has_file, procfile_web
from .base import InstallPlan, PathLike, Recipe, StartCommand, first_candidate, yum_steps

EXTENSIONS = ("fpm", "cli", "mysql", "curl", "gd", "mbstring", "xml", "zip")

INSTALL_COMPOSER = (
    "command -v composer >/dev/null 2>&1 || "
    "(curl -sS https://getcomposer.org/installer | php -- --install-dir=/tmp "
    "&& sudo mv /tmp/composer.phar /usr/local/bin/composer)"
)


class PhpRecipe(Recipe):
    runtime = RuntimeKind.PHP

    def install_plan(self, profile: RuntimeProfile) -> InstallPlan:
        version = profile.version or DEFAULT_VERSIONS[RuntimeKind.PHP]
        packages = " ".join(f"php{version}-{ext}" for ext in EXTENSIONS)
        return InstallPlan(
            binary="php",
            version_command="php --version | head -n 1",
            steps={
                "apt": (
                    "sudo apt-get update -y",
                    "sudo DEBIAN_FRONTEND=noninteractive apt-get install -y software-properties-common",
                    "sudo add-apt-repository -y ppa:ondrej/php",
                    "sudo apt-get update -y",
                    f"sudo DEBIAN_FRONTEND=noninteractive apt-get install -y {packages}",
                    f"sudo systemctl enable --now php{version}-fpm",
                ),
                "yum": yum_steps(
                    "php", "php-cli", "php-fpm", "php-mysqlnd", "php-gd", "php-mbstring", "php-xml", "php-zip",
                ) + ("sudo systemctl enable --now php-fpm",),
            },
        )

    def dependency_steps(self, project_root: Optional[PathLike], profile: RuntimeProfile) -> List[str]:
        if not has_file(project_root, "composer.json"):
            return []
        return [
            INSTALL_COMPOSER,
            "composer install --no-dev --optimize-autoloader --no-interaction",
        ]

    def start_command(self, project_root: Optional[PathLike], port: Optional[int]) -> StartCommand:
        web = procfile_web(project_root) if project_root else None
        if web:
            return StartCommand(web, "Procfile web")
        return first_candidate(project_root, [
            ("public/index.php", f"php -S 0.0.0.0:{port} -t public"),
            ("index.php", f"php -S 0.0.0.0:{port} -t ."),
            ("composer.json", f"php -S 0.0.0.0:{port} -t ."),
        ])
