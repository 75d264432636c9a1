"""
Packaging Service
=================
Hands the app configuration to the mobile-webview packaging project.

Responsibilities:
    - Load / save apk-config.json (AppConfig)
    - Bump the app version (patch / minor / major)
    - Rewrite appId / appName in capacitor.config.ts
    - Sync name / description / version into package.json
    - Copy the app icon into every Android density folder
    - Rewrite the splash background colour in styles.xml
    - Import a website folder into www/ (plus its icon / splash images)
    - Preflight: check the project can be built remotely before pushing

Android Paths (relative to the project root):
    android/app/src/main/res/mipmap-*/ic_launcher.png
    android/app/src/main/res/drawable*/ic_launcher.png
    android/app/src/main/AndroidManifest.xml
    android/app/src/main/res/values/styles.xml

Missing Android files are skipped, not created: the android/ folder is
generated on the CI runner when it is absent from the repository.
"""
import os
import re
import json
import shutil
import logging
from typing import List

from pydantic import ValidationError

from web2apk.core.config import APP_CONFIG_PATH
from web2apk.core.errors import AppConfigError, SiteImportError
from web2apk.models.app_config import AppConfig
from web2apk.parser.workflow_reader import find_build_workflow

logger = logging.getLogger(__name__)

CAPACITOR_CONFIG = "capacitor.config.ts"
PACKAGE_JSON = "package.json"
ANDROID_RES = os.path.join("android", "app", "src", "main", "res")
ANDROID_MANIFEST = os.path.join("android", "app", "src", "main", "AndroidManifest.xml")
STYLES_XML = os.path.join(ANDROID_RES, "values", "styles.xml")

ICON_DENSITY_DIRS = [
    "mipmap-mdpi",
    "mipmap-hdpi",
    "mipmap-xhdpi",
    "mipmap-xxhdpi",
    "mipmap-xxxhdpi",
    "drawable",
    "drawable-hdpi",
    "drawable-xhdpi",
    "drawable-xxhdpi",
    "drawable-xxxhdpi",
]
ICON_FILE = "ic_launcher.png"

VERSION_PARTS = ("patch", "minor", "major")

WEB_DIR = "www"
# build output and tooling folders never shipped inside the app
SITE_IGNORE = ("node_modules", ".git", ".next", ".nuxt", "dist", "build")
SITE_IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".svg")


# ---------------------------------------------------------------------------
# apk-config.json
# ---------------------------------------------------------------------------
def load_app_config(path: str = APP_CONFIG_PATH) -> AppConfig:
    """Read apk-config.json; defaults when the file does not exist."""
    if not os.path.exists(path):
        logger.warning("%s not found. Using default settings.", path)
        return AppConfig()
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return AppConfig.model_validate(data)
    except json.JSONDecodeError as e:
        raise AppConfigError(f"{path} is not valid JSON: {e}") from e
    except ValidationError as e:
        raise AppConfigError(f"{path} is invalid: {e}") from e


def save_app_config(config: AppConfig, path: str = APP_CONFIG_PATH) -> str:
    with open(path, "w", encoding="utf-8") as f:
        json.dump(config.model_dump(by_alias=True), f, indent=2)
        f.write("\n")
    logger.info("App configuration saved to %s", path)
    return path


def bump_version(version: str, part: str = "patch") -> str:
    """
    Return the next MAJOR.MINOR.PATCH version.

    >>> bump_version("1.2.3", "minor")
    '1.3.0'
    """
    if part not in VERSION_PARTS:
        raise ValueError(f"part must be one of {VERSION_PARTS}, got {part!r}")
    try:
        major, minor, patch = (int(p) for p in version.split("."))
    except ValueError as e:
        raise ValueError(f"version must be MAJOR.MINOR.PATCH, got {version!r}") from e

    if part == "major":
        return f"{major + 1}.0.0"
    if part == "minor":
        return f"{major}.{minor + 1}.0"
    return f"{major}.{minor}.{patch + 1}"


# ---------------------------------------------------------------------------
# Project files
# ---------------------------------------------------------------------------
def render_capacitor_config(content: str, config: AppConfig) -> str:
    """Rewrite the appId / appName literals of a capacitor.config.ts source."""
    content = re.sub(
        r"appId:\s*['\"][^'\"]*['\"]",
        lambda _: f"appId: '{config.app_id}'",
        content,
        count=1,
    )
    app_name = config.app_name.replace("\\", "\\\\").replace("'", "\\'")
    content = re.sub(
        r"appName:\s*['\"][^'\"]*['\"]",
        lambda _: f"appName: '{app_name}'",
        content,
        count=1,
    )
    return content


def update_capacitor_config(project_root: str, config: AppConfig) -> bool:
    path = os.path.join(project_root, CAPACITOR_CONFIG)
    if not os.path.exists(path):
        logger.warning("%s not found, skipping", CAPACITOR_CONFIG)
        return False
    with open(path, "r", encoding="utf-8") as f:
        original = f.read()
    rendered = render_capacitor_config(original, config)
    with open(path, "w", encoding="utf-8") as f:
        f.write(rendered)
    logger.info("Updated %s", CAPACITOR_CONFIG)
    return rendered != original


def update_package_json(project_root: str, config: AppConfig) -> bool:
    path = os.path.join(project_root, PACKAGE_JSON)
    if not os.path.exists(path):
        logger.warning("%s not found, skipping", PACKAGE_JSON)
        return False
    with open(path, "r", encoding="utf-8") as f:
        package = json.load(f)
    package["name"] = config.package_name
    package["description"] = config.description
    package["version"] = config.version
    with open(path, "w", encoding="utf-8") as f:
        json.dump(package, f, indent=2)
        f.write("\n")
    logger.info("Updated %s", PACKAGE_JSON)
    return True


def apply_icon(project_root: str, config: AppConfig) -> List[str]:
    """Copy the icon into every density folder. Returns the written paths."""
    icon_path = os.path.join(project_root, config.icon.path)
    if not config.icon.enabled:
        return []
    if not os.path.isfile(icon_path):
        logger.warning("Icon file not found: %s", config.icon.path)
        return []

    written: List[str] = []
    for density_dir in ICON_DENSITY_DIRS:
        target_dir = os.path.join(project_root, ANDROID_RES, density_dir)
        os.makedirs(target_dir, exist_ok=True)
        target = os.path.join(target_dir, ICON_FILE)
        shutil.copyfile(icon_path, target)
        written.append(target)

    manifest_path = os.path.join(project_root, ANDROID_MANIFEST)
    if os.path.exists(manifest_path):
        with open(manifest_path, "r", encoding="utf-8") as f:
            manifest = f.read()
        if 'android:icon="@mipmap/ic_launcher"' not in manifest:
            manifest = re.sub(
                r'android:icon="[^"]*"', 'android:icon="@mipmap/ic_launcher"', manifest, count=1
            )
            with open(manifest_path, "w", encoding="utf-8") as f:
                f.write(manifest)
            logger.info("AndroidManifest.xml now uses @mipmap/ic_launcher")

    logger.info("App icon copied to %d density folders", len(written))
    return written


def apply_splash(project_root: str, config: AppConfig) -> bool:
    """Rewrite the splash background colour in styles.xml."""
    if not config.splash.enabled:
        return False
    styles_path = os.path.join(project_root, STYLES_XML)
    if not os.path.exists(styles_path):
        logger.warning("styles.xml not found, skipping splash color update")
        return False
    with open(styles_path, "r", encoding="utf-8") as f:
        styles = f.read()
    styles = re.sub(
        r'android:color="[^"]*"', f'android:color="{config.splash.color}"', styles, count=1
    )
    with open(styles_path, "w", encoding="utf-8") as f:
        f.write(styles)
    logger.info("Splash screen color set to %s", config.splash.color)
    return True


def apply_app_config(project_root: str, config: AppConfig) -> List[str]:
    """Apply the whole configuration. Returns project-relative paths touched."""
    touched: List[str] = []
    if update_capacitor_config(project_root, config):
        touched.append(CAPACITOR_CONFIG)
    if update_package_json(project_root, config):
        touched.append(PACKAGE_JSON)
    touched.extend(os.path.relpath(p, project_root) for p in apply_icon(project_root, config))
    if apply_splash(project_root, config):
        touched.append(STYLES_XML)
    return touched


# ---------------------------------------------------------------------------
# Website import
# ---------------------------------------------------------------------------
def import_site(project_root: str, site_dir: str) -> List[str]:
    """
    Copy a website folder into www/. Existing www/ files that the site does
    not replace are kept. The first icon.* / splash.* image found at the top
    of the site is also copied to www/icon.png / www/splash.png.

    Returns www/-relative paths written.
    """
    source = os.path.abspath(site_dir)
    if not os.path.isdir(source):
        raise SiteImportError(f"Website folder not found: {site_dir}")
    if not os.path.isfile(os.path.join(source, "index.html")):
        raise SiteImportError(f"No index.html in {site_dir}")

    web_root = os.path.abspath(os.path.join(project_root, WEB_DIR))
    if source == web_root:
        logger.info("Website already lives in %s", WEB_DIR)
        return []
    project = os.path.abspath(project_root)
    if source == project:
        raise SiteImportError("The website folder cannot be the packaging project itself")

    def _ignore(directory: str, names: List[str]) -> List[str]:
        # the packaging project may sit inside the site folder
        return [
            name for name in names
            if name in SITE_IGNORE or os.path.join(os.path.abspath(directory), name) == project
        ]

    written: List[str] = []

    def _copy(src: str, dst: str) -> str:
        written.append(os.path.relpath(dst, web_root).replace(os.sep, "/"))
        return shutil.copy2(src, dst)

    shutil.copytree(source, web_root, ignore=_ignore, copy_function=_copy, dirs_exist_ok=True)

    for stem in ("icon", "splash"):
        for ext in SITE_IMAGE_EXTENSIONS:
            image = os.path.join(source, f"{stem}{ext}")
            if os.path.isfile(image):
                target = os.path.join(web_root, f"{stem}.png")
                if os.path.abspath(image) != target:
                    shutil.copyfile(image, target)
                    if f"{stem}.png" not in written:
                        written.append(f"{stem}.png")
                logger.info("Copied %s -> %s/%s.png", os.path.basename(image), WEB_DIR, stem)
                break

    logger.info("Imported %d website file(s) from %s into %s/", len(written), site_dir, WEB_DIR)
    return written


# ---------------------------------------------------------------------------
# Preflight
# ---------------------------------------------------------------------------
def preflight(project_root: str) -> List[str]:
    """
    Problems that would make a push pointless. Empty list = ready.
    """
    problems: List[str] = []
    if not os.path.isfile(os.path.join(project_root, WEB_DIR, "index.html")):
        problems.append("www/index.html is missing: add your website files to www/")
    if find_build_workflow(project_root) is None:
        problems.append(
            "no workflow in .github/workflows builds on push and uploads an artifact"
        )
    return problems
