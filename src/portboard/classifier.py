"""Category classification for listening processes."""

from .models import Category, DockerContainerInfo

DATABASE_IMAGES = (
    "postgres",
    "mysql",
    "mariadb",
    "redis",
    "mongo",
    "cassandra",
    "elasticsearch",
    "clickhouse",
    "couchdb",
    "influxdb",
    "neo4j",
)

WEB_SERVER_IMAGES = ("nginx", "apache", "httpd", "caddy", "traefik", "haproxy", "envoy")

SYSTEM_PATH_PREFIXES = (
    "/system/",
    "c:\\windows\\",
)

SYSTEM_PROCESS_NAMES = frozenset(
    {
        "launchd",
        "kernel_task",
        "rapportd",
        "controlcenter",
        "sharingd",
        "mdnsresponder",
        "systemd",
        "systemd-resolved",
        "cupsd",
        "sshd",
        "system",
        "svchost.exe",
        "svchost",
        "lsass.exe",
        "lsass",
        "services.exe",
        "services",
        "wininit.exe",
        "wininit",
        "spoolsv.exe",
        "spoolsv",
    }
)

SYSTEM_NAME_FRAGMENTS = ("kernel", "launchd")

DEVELOPMENT_NAMES = (
    "visual studio code",
    "code",
    "vscode",
    "cursor",
    "raycast",
    "figma",
    "intellij",
    "pycharm",
    "webstorm",
    "goland",
    "android studio",
    "xcode",
    "sublime",
    "atom",
    "zed",
    "vim",
    "emacs",
    "postman",
    "insomnia",
    "docker desktop",
)

DATABASE_NAMES = (
    "postgres",
    "mysql",
    "mariadb",
    "redis",
    "mongod",
    "mongo",
    "cassandra",
    "elasticsearch",
    "sqlite",
    "clickhouse",
    "memcached",
)

WEB_SERVER_NAMES = ("nginx", "apache", "httpd", "caddy", "traefik", "haproxy")

APPLICATION_DIRS = (
    "/applications/",
    "/system/applications/",
    "~/applications/",
    "c:\\program files",
)

RUNTIME_NAMES = frozenset(
    {
        "python",
        "node",
        "deno",
        "bun",
        "ruby",
        "java",
        "php",
        "perl",
        "go",
        "cargo",
        "dotnet",
        "beam.smp",
        "uvicorn",
        "gunicorn",
        "npm",
        "pnpm",
        "yarn",
    }
)


def _runtime_base(process_name: str) -> str:
    # "python3.12" -> "python", "node.exe" -> "node"
    name = process_name.lower()
    if name.endswith(".exe"):
        name = name[:-4]
    return name.rstrip("0123456789.") or name


def is_runtime(process_name: str) -> bool:
    """Whether a process name is a language runtime or developer CLI."""
    name = process_name.lower()
    return name in RUNTIME_NAMES or _runtime_base(process_name) in RUNTIME_NAMES


def is_application_bundle(path: str) -> bool:
    """Whether a path is inside a macOS-style .app bundle."""
    return ".app/" in path or path.endswith(".app")


def classify(
    process_name: str,
    app_name: str | None = None,
    command_path: str | None = None,
    docker: DockerContainerInfo | None = None,
) -> Category:
    """Assign a category to a process.

    First match wins:
    1. Docker containers by image (database, web-server, else user)
    2. System paths and process names
    3. IDEs and developer tools
    4. Database servers
    5. Web servers
    6. Executables under an application directory
    7. Language runtimes and CLIs, even when bundled (overrides 6)
    8. Any other .app bundle
    9. user

    Args:
        process_name: Name reported by the port listing
        app_name: Application name from metadata, if any
        command_path: Executable path, if known
        docker: Container publishing this port, if any

    Returns:
        The category
    """
    if docker is not None:
        image = docker.image.lower()
        if any(db in image for db in DATABASE_IMAGES):
            return Category.DATABASE
        if any(web in image for web in WEB_SERVER_IMAGES):
            return Category.WEB_SERVER
        return Category.USER

    name = (app_name or process_name).lower()
    path = (command_path or "").lower()

    if (
        path.startswith(SYSTEM_PATH_PREFIXES)
        or process_name.lower() in SYSTEM_PROCESS_NAMES
        or any(fragment in name for fragment in SYSTEM_NAME_FRAGMENTS)
    ):
        return Category.SYSTEM

    if any(tool in name for tool in DEVELOPMENT_NAMES):
        return Category.DEVELOPMENT

    if any(db in name for db in DATABASE_NAMES):
        return Category.DATABASE

    if any(web in name for web in WEB_SERVER_NAMES):
        return Category.WEB_SERVER

    in_app_dir = any(app_dir in path for app_dir in APPLICATION_DIRS)
    runtime = is_runtime(process_name)

    if in_app_dir and not runtime:
        return Category.APPLICATIONS

    if runtime:
        return Category.USER

    if command_path and is_application_bundle(command_path):
        return Category.APPLICATIONS

    return Category.USER
