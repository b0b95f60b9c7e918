"""MCP Router entrypoint."""

import uvicorn

from mcprouter.config.settings import get_settings


def cli() -> None:
    """CLI entrypoint."""
    uvicorn.run("mcprouter.web.app:create_app", factory=True, reload=get_settings().debug)


if __name__ == "__main__":
    cli()
