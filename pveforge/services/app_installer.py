"""Installs media apps inside running containers.

Recipes are declarative YAML files (see pveforge/recipes/). Each recipe is
turned into an ordered list of small bash steps, run through ``pct exec``;
the first failing step aborts the install.
"""
import shlex
import time
from pathlib import Path
from typing import List, Optional, Tuple

import yaml
from jinja2 import BaseLoader, Environment, StrictUndefined, TemplateError
from pydantic import ValidationError

from pveforge.core.config import get_config
from pveforge.core.errors import HealthCheckFailed, InvalidSpec
from pveforge.core.logger import get_logger
from pveforge.models.app import AppRecipe
from pveforge.services.proxmox.containers import ContainerLifecycle

logger = get_logger(__name__)

RECIPE_DIR = Path(__file__).parent.parent / "recipes"
DEBIAN_COMPONENTS = "main contrib non-free non-free-firmware"

_jinja_env = Environment(
    loader=BaseLoader(),
    autoescape=False,
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=True,
    undefined=StrictUndefined,
)


def render(template: str, **context) -> str:
    """Render a recipe string with Jinja2."""
    try:
        return _jinja_env.from_string(template).render(**context)
    except TemplateError as e:
        raise InvalidSpec([f"Template rendering failed: {e}"]) from e


def render_debian_sources(release: str, backports: bool = False) -> str:
    """Render /etc/apt/sources.list for a Debian release."""
    template = (RECIPE_DIR / "debian-sources.list.j2").read_text()
    return render(template, release=release, backports=backports,
                  components=DEBIAN_COMPONENTS)


def write_file_script(path: str, content: str) -> str:
    """Shell snippet writing content verbatim to path via a quoted heredoc."""
    if not content.endswith("\n"):
        content += "\n"
    return f"cat > {shlex.quote(path)} <<'PVEFORGE_EOF'\n{content}PVEFORGE_EOF"


def _sed_escape(value: str) -> str:
    return "".join("\\" + ch if ch in "\\.[]*^$|&/" else ch for ch in value)


class RecipeLoader:
    """Loads app recipes from YAML files."""

    def __init__(self, recipe_dir: Optional[Path] = None):
        self.recipe_dir = Path(recipe_dir) if recipe_dir else RECIPE_DIR

    def list_recipes(self) -> List[AppRecipe]:
        recipes = []
        for path in sorted(self.recipe_dir.glob("*.yml")):
            try:
                recipes.append(self.load_recipe(path.stem))
            except InvalidSpec as e:
                logger.warning(f"Failed to load recipe {path.stem}: {e}")
        return recipes

    def load_recipe(self, name: str) -> AppRecipe:
        """Load one recipe by name.

        Raises:
            InvalidSpec: Unknown recipe or invalid recipe file
        """
        path = self.recipe_dir / f"{name}.yml"
        if not path.exists():
            known = ", ".join(sorted(p.stem for p in self.recipe_dir.glob("*.yml")))
            raise InvalidSpec([f"Unknown app '{name}' (available: {known})"])

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        try:
            return AppRecipe(**data)
        except ValidationError as e:
            raise InvalidSpec([f"{name}: {err['msg']} ({'.'.join(map(str, err['loc']))})"
                               for err in e.errors()]) from e


class AppInstaller:
    """Runs app recipes inside containers via pct exec."""

    def __init__(self, mock: bool = False, lifecycle: Optional[ContainerLifecycle] = None):
        self.mock = mock
        self.lifecycle = lifecycle or ContainerLifecycle(mock=mock)
        self.loader = RecipeLoader()

    def build_steps(self, recipe: AppRecipe) -> List[Tuple[str, str]]:
        """Turn a recipe into ordered (label, bash script) steps."""
        apt = "export DEBIAN_FRONTEND=noninteractive\n"
        steps: List[Tuple[str, str]] = []

        if recipe.debian_sources:
            sources = render_debian_sources(recipe.release, recipe.backports)
            steps.append((
                "Configuring apt sources",
                "if [ -f /etc/apt/sources.list ]; then "
                "cp /etc/apt/sources.list /etc/apt/sources.list.backup.$(date +%Y%m%d_%H%M%S); fi\n"
                + write_file_script("/etc/apt/sources.list", sources),
            ))

        steps.append(("Updating system", apt + "apt-get update\napt-get upgrade -y"))

        if recipe.prerequisites:
            steps.append((
                "Installing prerequisites",
                apt + "apt-get install -y " + " ".join(recipe.prerequisites),
            ))

        if recipe.repository:
            repo = recipe.repository
            source = render(repo.source, keyring=repo.keyring, release=recipe.release)
            keyring_dir = str(Path(repo.keyring).parent)
            steps.append((
                f"Adding {recipe.name} repository",
                f"install -m 0755 -d {shlex.quote(keyring_dir)}\n"
                f"curl -fsSL {shlex.quote(repo.key_url)} | gpg --dearmor --yes -o {shlex.quote(repo.keyring)}\n"
                + write_file_script(f"/etc/apt/sources.list.d/{repo.list_file}", source)
                + "\napt-get update",
            ))

        if recipe.system_user:
            user = shlex.quote(recipe.system_user)
            script = (
                f"id {user} >/dev/null 2>&1 || "
                f"useradd --system --shell /bin/false --no-create-home {user}"
            )
            for directory in recipe.directories:
                path = shlex.quote(directory)
                script += f"\nmkdir -p {path}\nchown -R {user}:{user} {path}"
                script += f"\n[ \"$(stat -c %U {path})\" = {user} ]"
            steps.append((f"Creating {recipe.system_user} user and directories", script))

        if recipe.dependencies:
            steps.append((
                "Installing dependencies",
                apt + "apt-get install -y " + " ".join(recipe.dependencies),
            ))

        target = f"-t {recipe.target_release} " if recipe.target_release else ""
        steps.append((
            f"Installing {recipe.name}",
            apt + f"apt-get install -y {target}" + " ".join(recipe.packages),
        ))

        if recipe.service and recipe.service.unit:
            steps.append((
                "Creating systemd service",
                write_file_script(f"/etc/systemd/system/{recipe.service.name}.service",
                                  recipe.service.unit),
            ))

        if recipe.service:
            service = shlex.quote(recipe.service.name)
            steps.append((
                "Enabling service",
                f"systemctl daemon-reload\nsystemctl enable {service}",
            ))

        for edit in recipe.config_edits:
            steps.append((
                f"Editing {edit.path}",
                f"sed -i 's|^{_sed_escape(edit.search)}$|{_sed_escape(edit.replace)}|' "
                f"{shlex.quote(edit.path)}",
            ))

        if recipe.service:
            steps.append(("Starting service", f"systemctl restart {shlex.quote(recipe.service.name)}"))

        return steps

    def install(self, vmid: int, app: str) -> Optional[str]:
        """Install one app into a running container.

        Returns:
            The app's access URL, when the recipe declares one

        Raises:
            ExternalCommandError: A step failed
            HealthCheckFailed: The service is not active after start
        """
        recipe = self.loader.load_recipe(app)
        config = get_config()

        logger.info(f"Installing {recipe.name} in container {vmid}")
        for label, script in self.build_steps(recipe):
            logger.info(f"[{recipe.name}] {label}...")
            self.lifecycle.run_script(vmid, script, step=f"install {recipe.name}",
                                      timeout=config.app_install_timeout)

        if recipe.health_check:
            self.check_service(vmid, recipe.service.name)

        logger.info(f"✓ {recipe.name} installed in container {vmid}")

        if recipe.access_url:
            return render(recipe.access_url, address=self.container_address(vmid))
        return None

    def check_service(self, vmid: int, service: str) -> None:
        """Verify a service is active.

        Raises:
            HealthCheckFailed: systemctl reports the service inactive
        """
        if self.mock:
            logger.info(f"MOCK: Would check that {service} is active in container {vmid}")
            return

        time.sleep(get_config().health_check_delay)
        result = self.lifecycle.exec_container_command(
            vmid, ['systemctl', 'is-active', '--quiet', service], capture=True
        )
        if result.returncode != 0:
            logger.error(f"✗ {service} failed to start in container {vmid}")
            logger.error(f"  Check logs with: pct exec {vmid} -- journalctl -u {service} -xe")
            raise HealthCheckFailed(vmid, service)
        logger.info(f"✓ {service} is running in container {vmid}")

    def container_address(self, vmid: int) -> str:
        """First IP address reported inside the container."""
        result = self.lifecycle.exec_container_command(
            vmid, ['hostname', '-I'], capture=True
        )
        addresses = (result.stdout or "").split() if result.returncode == 0 else []
        return addresses[0] if addresses else "<container-ip>"
