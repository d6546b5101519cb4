# run_server.py
import uvicorn

from ark_console.api import create_app
from ark_console.config import Settings, configure_logging

if __name__ == "__main__":
    settings = Settings()
    configure_logging(settings.log_level)
    uvicorn.run(
        create_app(settings),
        host="0.0.0.0",
        port=8000,
        log_level=settings.log_level.lower(),
        access_log=True,
        log_config=None,
    )
