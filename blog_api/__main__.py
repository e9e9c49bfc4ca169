"""
Development server: python -m blog_api

Configuration comes from APP_ENV (see get_config()); use a WSGI server in production.
"""
import os

from . import create_app

app = create_app()

if __name__ == "__main__":
    app.run(
        host=os.getenv("FLASK_RUN_HOST", "127.0.0.1"),
        port=int(os.getenv("FLASK_RUN_PORT", "8000")),
        debug=app.config["DEBUG"],
    )
