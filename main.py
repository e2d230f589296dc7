from __future__ import annotations

import logging
import sys

import uvicorn

from chatrelay.app.api.app import create_app
from chatrelay.core.config import (
    MissingConfigurationError,
    load_app_config,
    load_dotenv_file,
)

load_dotenv_file()

try:
    config = load_app_config()
except MissingConfigurationError as exc:
    logging.basicConfig(level=logging.ERROR)
    logging.getLogger("chatrelay").error(str(exc))
    sys.exit(1)

logging.basicConfig(
    level=config.log_level,
    format="[%(asctime)s] %(levelname)s %(name)s - %(message)s",
)

app = create_app(config)


if __name__ == "__main__":
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=config.port,
        log_level=config.log_level.lower(),
    )
