#!/usr/bin/env python3
"""
Database initialization script
Creates all donor CRM tables based on SQLAlchemy models
"""
import os
import sys
import logging
from sqlalchemy import inspect, text
from sqlalchemy.exc import SQLAlchemyError

from database.database import init_db, engine

logger = logging.getLogger(__name__)


def main():
    """Initialize database tables"""
    logging.basicConfig(level=logging.INFO)
    try:
        logger.info("Initializing database...")
        logger.info(f"Database URL: {os.getenv('DATABASE_URL', 'Not set')}")

        init_db()

        tables = inspect(engine).get_table_names()
        logger.info(f"Database tables created successfully: {', '.join(sorted(tables))}")

        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        logger.info("Database connection OK")
        return 0

    except SQLAlchemyError as e:
        logger.error(f"Error initializing database: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
