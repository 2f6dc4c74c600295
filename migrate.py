"""
Run database migrations without starting the web server.

Usage:
  python migrate.py

This script uses Flask-Migrate (Alembic) to apply schema migrations.
"""

import os
import sys


def main():
    # Keep app startup hooks disabled; run migration explicitly below.
    os.environ['RUN_STARTUP_DDL'] = '0'
    os.environ['VERIFY_DB_GUARDS'] = '0'

    import school_results
    from flask_migrate import Migrate, upgrade

    Migrate(school_results.app, directory='migrations')

    try:
        print("Applying database migrations...")
        # Upgrade within app context so Flask-Migrate can find the migrate object
        with school_results.app.app_context():
            upgrade(directory='migrations')
        print("✓ Migrations completed successfully.")
    except Exception as e:
        print(f"✗ Migration failed: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        sys.exit(1)


if __name__ == '__main__':
    main()
