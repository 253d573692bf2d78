import os
import sys
import logging
import argparse
import psycopg2

logger = logging.getLogger(__name__)

SCHEMA_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'schema.sql')


def get_db_connection():
    """
    Establishes and returns a connection to the PostgreSQL database.

    psycopg2 connections start with auto-commit disabled, so every caller is
    responsible for an explicit commit or rollback.

    Returns:
        A psycopg2 connection, or None if the database cannot be reached.
    """
    try:
        conn = psycopg2.connect(
            dbname=os.getenv("POSTGRES_DB", "inventory"),
            user=os.getenv("POSTGRES_USER", "user"),
            password=os.getenv("POSTGRES_PASSWORD", "password"),
            host=os.getenv("POSTGRES_HOST", "localhost"),
            port=os.getenv("POSTGRES_PORT", "5432")
        )
        conn.autocommit = False
        return conn
    except psycopg2.OperationalError as e:
        logger.error(f"Could not connect to the database. Please ensure it is running. Details: {e}")
        return None


def initialize_database(connection_factory=get_db_connection, schema_path=SCHEMA_PATH):
    """
    Initializes the database by executing the DDL statements in 'schema.sql'.

    Args:
        connection_factory (callable): Returns a new connection, or None.
        schema_path (str): Path to the DDL script.

    Returns:
        bool: True if the schema was applied and committed.
    """
    conn = None
    try:
        logger.info(f"Reading database schema from {schema_path}...")
        with open(schema_path, 'r') as f:
            schema_sql = f.read()
        conn = connection_factory()
        if conn is None:
            return False
        with conn.cursor() as cur:
            logger.info("Executing schema.sql to initialize database...")
            cur.execute(schema_sql)
        conn.commit()
        logger.info("Database initialized successfully.")
        return True
    except FileNotFoundError:
        logger.error(f"schema.sql not found at {schema_path}")
        return False
    except psycopg2.Error as e:
        logger.error(f"An error occurred during database initialization: {e}")
        if conn:
            conn.rollback()
        return False
    finally:
        if conn:
            conn.close()


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
    parser = argparse.ArgumentParser(description="Database utility script.")
    parser.add_argument('--init', action='store_true', help='Initialize the database schema without prompting for confirmation.')
    args = parser.parse_args()

    if args.init:
        print("--- Database Initializer (non-interactive) ---")
        ok = initialize_database()
    else:
        print("--- Database Initializer ---")
        print("WARNING: This script is destructive and will drop the products table.")
        confirm = input("Are you sure you want to drop the products table and re-initialize it? (yes/no): ")
        ok = False
        if confirm.lower() == 'yes':
            ok = initialize_database()
        else:
            print("INFO: Database initialization cancelled.")
    print("--- Finished ---")
    sys.exit(0 if ok else 1)
