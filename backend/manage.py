import argparse
import logging
import os

from photo_enhancer import create_app
from photo_enhancer.errors import ConflictError, install_process_hooks
from photo_enhancer.models import db
from photo_enhancer.store import Store


def init_db(app):
    # The 'app_context' is needed for SQLAlchemy to know which app it's working with
    with app.app_context():
        print("Creating all database tables...")
        db.create_all()
        print("Done!")


def create_admin(app, email, password):
    if len(password) < 8:
        print("Password must be at least 8 characters long")
        return 1
    with app.app_context():
        try:
            user = Store(db.session).create_user(email, password, is_admin=True)
        except ConflictError:
            print(f"User {email} already exists")
            return 1
        print(f"Admin {user.email} created with id {user.id}")
    return 0


def run(app, host, port):
    install_process_hooks()
    app.run(host=host, port=port)


def main(argv=None):
    parser = argparse.ArgumentParser(description='Photo enhancer management commands')
    sub = parser.add_subparsers(dest='command', required=True)
    sub.add_parser('init-db', help='Create database tables')
    admin = sub.add_parser('create-admin', help='Create an admin user')
    admin.add_argument('email')
    admin.add_argument('password')
    serve = sub.add_parser('run', help='Run the development server')
    serve.add_argument('--host', default=os.environ.get('HOST', '127.0.0.1'))
    serve.add_argument('--port', type=int, default=int(os.environ.get('PORT', 5001)))
    args = parser.parse_args(argv)

    # Create an app instance
    app = create_app()
    logging.getLogger(__name__).debug(f'Running command {args.command}')

    if args.command == 'init-db':
        init_db(app)
        return 0
    if args.command == 'create-admin':
        return create_admin(app, args.email, args.password)
    run(app, args.host, args.port)
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
