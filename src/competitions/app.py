"Backend application for the competition registration API using Flask framework"

import os
import sys
import getpass
import traceback
import logging
import bcrypt
from waitress import serve
from flask import Flask, request, jsonify

from . import config
from . import database
from . import admin
from . import client
from . import registration
from .extensions import csrf_protector, limiter

flask_app = Flask(__name__)

flask_app.secret_key = config.secret_key
flask_app.config.update(
    PERMANENT_SESSION_LIFETIME=config.permanent_session_lifetime,
    SESSION_COOKIE_HTTPONLY=True,
    RATELIMIT_ENABLED=config.rate_limit_enabled,
)
flask_app.json.sort_keys = False
csrf_protector.init_app(flask_app)
limiter.init_app(flask_app)

database.create_database()
with database.get_db_session() as _db_bootstrap_session:
    database.populate_competitions(_db_bootstrap_session)

flask_app.register_blueprint(client.client_blueprint)
flask_app.register_blueprint(admin.admin_blueprint)


def _json_error(message, status_code, **extra):
    payload = {"success": False, "error": message}
    payload.update(extra)
    return jsonify(payload), status_code


@flask_app.errorhandler(400)
def handle_bad_request(error):
    """Handles 400 Bad Request errors."""
    flask_app.logger.warning(
        "Bad request (400) at %s from %s: %s",
        request.url,
        request.remote_addr,
        error,
    )
    return _json_error(getattr(error, "description", "Bad request"), 400)


@flask_app.errorhandler(403)
def handle_forbidden(error):
    """Handles 403 Forbidden errors."""
    flask_app.logger.warning(
        "Forbidden (403) access attempt at %s by %s: %s",
        request.url,
        request.remote_addr,
        error,
    )
    return _json_error("Forbidden", 403)


@flask_app.errorhandler(404)
def handle_not_found(error):
    """Handles 404 Not Found errors."""
    return _json_error("Not found", 404)


@flask_app.errorhandler(429)
def handle_rate_limited(error):
    """Handles 429 Too Many Requests errors."""
    flask_app.logger.warning(
        "Rate limit hit at %s by %s: %s", request.url, request.remote_addr, error
    )
    return _json_error("Too many requests, please slow down", 429)


@flask_app.errorhandler(registration.ExhaustedRetriesError)
def handle_exhausted_retries(error):
    """Identifier space collisions are transient; the client may retry."""
    flask_app.logger.error("Identifier generation exhausted on %s: %s", request.url, error)
    return _json_error(
        "Could not allocate a unique identifier, please try again",
        503,
        retryable=True,
    )


@flask_app.errorhandler(500)
def handle_server_error(error):
    """Handles 500 Internal Server errors."""
    flask_app.logger.error(
        "Internal Server Error (500) on %s %s from %s:\n%s",
        request.method,
        request.url,
        request.remote_addr,
        traceback.format_exc(),
    )

    if flask_app.debug:
        return _json_error("Internal server error", 500, trace=traceback.format_exc())
    return _json_error("Internal server error", 500)


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

logger = logging.getLogger(__name__)


def print_startup_message(host: str, port: int, mode: str) -> None:
    """Logs the startup message for the server."""
    schedule = registration.PeriodSchedule.from_config(config.registration_periods)
    border = "=" * 60
    logger.info(border)
    logger.info("competition registration backend is launching...")
    logger.info("   - Version: %s", config.app_version)
    logger.info("   - Mode: %s", mode)
    logger.info("   - Database: %s", database.db_engine.url.render_as_string())
    logger.info("   - Current period: %s", registration.get_current_period(schedule).label)
    logger.info("   - PayHere mode: %s", config.payhere_config["mode"])
    logger.info("   - Listening on: http://%s:%s", host, port)
    logger.info(border)


@flask_app.cli.command("init-db")
def initialize_database_command() -> None:
    """Creates the database tables and populates the competitions."""
    database.create_database()

    with database.get_db_session() as db:
        database.populate_competitions(db)

    logger.info("Database initialized successfully.")


wsgi_app = flask_app


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] == "generate_hash":
        try:
            admin_password = getpass.getpass("Enter the admin password: ")
            if admin_password:
                logger.info("Admin hash created. Add this line to your .env file:")
                logger.info("-" * 50)
                logger.info(
                    "admin_password_hash='%s'",
                    bcrypt.hashpw(
                        admin_password.encode("utf-8"), bcrypt.gensalt()
                    ).decode("utf-8"),
                )
                logger.info("-" * 50)
            else:
                logger.warning("The password cannot be empty.")
        except (KeyboardInterrupt, EOFError, ValueError) as error:
            logger.error("An error occurred: %s", error)
        sys.exit()

    host, port = config.host, config.port
    MODE = "Debug" if config.debug else "Production"
    if os.environ.get("WERKZEUG_RUN_MAIN") != "true":
        print_startup_message(host, port, MODE)

    if config.debug:
        flask_app.run(host=host, port=port, debug=config.debug)
    else:
        serve(flask_app, host=host, port=port)
