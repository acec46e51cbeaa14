"""
Development server: `python -m api`.
Production deployments serve create_app() through a WSGI server instead.
"""
import logging
import os

from . import create_app

logger = logging.getLogger("api")


def main():
    # APP_ENV picks the config class (see get_config())
    app = create_app()
    host = os.getenv("FLASK_RUN_HOST", "0.0.0.0")
    port = int(os.getenv("FLASK_RUN_PORT", "8000"))
    debug = os.getenv("FLASK_DEBUG", str(app.config.get("DEBUG", False))).lower() in ("1", "true", "yes")
    logger.info("Serving %s on %s:%s", app.config.get("APP_ENV"), host, port)
    app.run(host=host, port=port, debug=debug)


if __name__ == "__main__":
    main()
