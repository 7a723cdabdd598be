from pathlib import Path

# Initialize dotenv before other imports to ensure environment variables are available
from dotenv import load_dotenv

dotenv_path = Path(__file__).resolve().parent / ".env"
load_dotenv(dotenv_path if dotenv_path.exists() else None)

import uvicorn

from polaris.config import load_config


def main():
    config = load_config()
    uvicorn.run(
        "polaris.api.main:create_app",
        factory=True,
        host=config.api.host,
        port=config.api.port,
        log_level=config.logging.level.lower(),
    )


if __name__ == "__main__":
    main()
