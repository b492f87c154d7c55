"""Default configuration values for Shipyard."""

import logging

logger = logging.getLogger(__name__)


DEFAULT_WEBHOOK_PORT = 9000

# Named port ranges for automatic allocation (inclusive bounds)
PORT_RANGES: dict[str, dict[str, int]] = {
    "standard": {"start": 3001, "end": 3099},
    "games": {"start": 4000, "end": 4099},
    "special": {"start": 5000, "end": 5099},
}

# Ports never handed out automatically (engine HTTP, engine WS, webhook server)
DEFAULT_RESERVED_PORTS: list[int] = [4040, 8080, 9000]

# Deployment history entries kept per target
MAX_HISTORY = 10

# Build timeout applied when neither the descriptor nor global defaults set one
DEFAULT_BUILD_TIMEOUT = 600  # seconds

DEFAULT_APP_MEMORY = "512M"
DEFAULT_ENGINE_MEMORY = "2G"

# Package manager command table
RUNTIME_COMMANDS: dict[str, dict[str, str]] = {
    "npm": {
        "install": "npm ci",
        "build": "npm ci && npm run build",
        "start": "npm start",
        "run": "npm run",
    },
    "bun": {
        "install": "bun install --frozen-lockfile",
        "build": "bun install --frozen-lockfile && bun run build",
        "start": "bun start",
        "run": "bun run",
    },
    "pnpm": {
        "install": "pnpm install --frozen-lockfile",
        "build": "pnpm install --frozen-lockfile && pnpm run build",
        "start": "pnpm start",
        "run": "pnpm run",
    },
    "yarn": {
        "install": "yarn install --frozen-lockfile",
        "build": "yarn install --frozen-lockfile && yarn run build",
        "start": "yarn start",
        "run": "yarn run",
    },
}


def get_runtime_command(runtime: str, action: str) -> str:
    """Get the default shell command for a runtime action.

    Args:
        runtime: Package manager name ("npm", "bun", "pnpm", "yarn")
        action: One of "install", "build", "start", "run"

    Returns:
        Shell command string. Unknown runtimes fall back to npm.
    """
    commands = RUNTIME_COMMANDS.get(runtime)
    if commands is None:
        logger.warning(f"Unknown runtime '{runtime}', falling back to npm commands")
        commands = RUNTIME_COMMANDS["npm"]
    return commands[action]
