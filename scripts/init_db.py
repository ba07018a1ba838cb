from __future__ import annotations

import importlib
import logging

from dotenv import load_dotenv

from classroom_attendance.config import get_settings_module
from classroom_attendance.container import db_config_from_dict
from classroom_attendance.database.bootstrap import apply_schema, list_tables


def main() -> None:
    load_dotenv(override=False)
    logging.basicConfig(level=logging.INFO)

    settings = importlib.import_module(get_settings_module())
    config = db_config_from_dict(dict(settings.DB_CONFIG))

    count = apply_schema(config)
    tables = list_tables(config)
    print(
        f"OK: applied {count} statement(s) -> "
        f"{config.user}@{config.host}:{config.port}/{config.database} (tables={len(tables)})"
    )


if __name__ == "__main__":
    main()
