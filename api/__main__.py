"""
Development server: `python -m api`.
Production should serve api:create_app() from a WSGI server instead.
Expired tokens are purged with `flask --app api cleanup-expired`.
"""
import os
from . import create_app


def main():
    app = create_app()  # APP_ENV picks the config class
    debug_default = "1" if app.config.get("DEBUG") else "0"
    app.run(
        host=os.getenv("FLASK_RUN_HOST", "127.0.0.1"),
        port=int(os.getenv("FLASK_RUN_PORT", "8000")),
        debug=os.getenv("FLASK_DEBUG", debug_default).lower() in ("1", "true", "yes"),
    )


if __name__ == "__main__":
    main()
