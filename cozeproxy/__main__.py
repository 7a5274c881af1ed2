"""Run the proxy: ``python -m cozeproxy``."""

import uvicorn

from .config_loader import load_config
from .main import create_app
from .settings import parse_settings


def main() -> None:
    config = load_config()
    settings = parse_settings(config)
    uvicorn.run(create_app(config), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
