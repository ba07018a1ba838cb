from __future__ import annotations

import importlib
import logging
from typing import Optional

from dotenv import load_dotenv
from flask import Flask

from .attendance.controller import register as register_attendance
from .classes.controller import register as register_classes
from .common.http import ok, register_error_handlers
from .config import get_settings_module
from .container import Container, build_container, db_config_from_dict
from .database.bootstrap import apply_schema, list_tables
from .students.controller import register as register_students
from .users.controller import register as register_users

logger = logging.getLogger(__name__)


def create_app(container: Optional[Container] = None, *, settings_module: Optional[str] = None) -> Flask:
    load_dotenv(override=False)
    app = Flask(__name__)

    settings_module = settings_module or get_settings_module()
    settings = importlib.import_module(settings_module)
    app.secret_key = getattr(settings, "SECRET_KEY")
    db_config = getattr(settings, "DB_CONFIG")
    app.config["DEBUG"] = bool(getattr(settings, "DEBUG", False))
    app.config["TESTING"] = bool(getattr(settings, "TESTING", False))

    logging.basicConfig(
        level=getattr(settings, "LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    logger.info(
        "settings=%s db=%s@%s:%s/%s",
        settings_module,
        db_config.get("user"),
        db_config.get("host"),
        db_config.get("port", 3306),
        db_config.get("database"),
    )

    if container is None:
        if bool(getattr(settings, "AUTO_INIT_DB", False)):
            config = db_config_from_dict(db_config)
            apply_schema(config)
            logger.info("Schema ready (tables=%d)", len(list_tables(config)))
        container = build_container(db_config=db_config)

    register_error_handlers(app)
    register_users(app, container)
    register_classes(app, container)
    register_attendance(app, container)
    register_students(app, container)

    @app.route("/api/health", methods=["GET"], endpoint="health")
    def health():
        db = container.pool.status() if container.pool is not None else None
        return ok({"status": "ok", "database": db})

    return app
