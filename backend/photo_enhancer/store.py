# Per-request store handle and queries
import logging
from functools import wraps

from flask import g
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .errors import ConflictError, StoreUnavailable
from .models import Image, User, db
from .security import generate_download_token, hash_password

logger = logging.getLogger(__name__)


class Store:
    def __init__(self, session):
        self.session = session

    def ping(self):
        self.session.execute(text('SELECT 1'))

    def is_available(self):
        try:
            self.ping()
            return True
        except SQLAlchemyError as e:
            logger.warning(f'Database ping failed: {e}')
            self.session.rollback()
            return False

    # --- users ---

    def create_user(self, email, password, is_admin=False, username=None):
        email = User.normalize_email(email)
        if self.find_user_by_email(email) is not None:
            raise ConflictError('User already exists')
        user = User(
            email=email,
            username=(username or '').strip() or User.username_from_email(email),
            password_hash=hash_password(password),
            is_admin=is_admin,
        )
        self.session.add(user)
        try:
            self.session.commit()
        except IntegrityError:
            # Lost a race with a concurrent registration of the same email
            self.session.rollback()
            raise ConflictError('User already exists')
        logger.info(f'User created: id={user.id}')
        return user

    def find_user_by_email(self, email):
        return User.query.filter_by(email=User.normalize_email(email)).first()

    def get_user(self, user_id):
        return self.session.get(User, user_id)

    def list_users(self):
        return User.query.order_by(User.created_at.desc(), User.id.desc()).all()

    def soft_delete_user(self, user_id):
        user = self.get_user(user_id)
        if user is None:
            return None
        user.deleted = True
        self.session.commit()
        return user

    # --- images ---

    def add_image(self, file_path, original_name, type='enhanced', user_id=None, context=None):
        image = Image(
            user_id=user_id,
            type=type,
            file_path=file_path,
            context=context,
            original_name=original_name,
            download_token=generate_download_token(),
        )
        self.session.add(image)
        self.session.commit()
        return image

    def find_image_by_file_and_token(self, file_path, token):
        if not file_path or not token:
            return None
        # Soft-deleted rows still match here
        return Image.query.filter_by(file_path=file_path, download_token=token).first()

    def list_images(self):
        return Image.query.order_by(Image.created_at.desc(), Image.id.desc()).all()

    def list_user_images(self, user_id):
        return (
            Image.query.filter_by(user_id=user_id, deleted=False)
            .order_by(Image.created_at.desc(), Image.id.desc())
            .all()
        )

    def soft_delete_image(self, image_id, user_id):
        image = Image.query.filter_by(id=image_id, user_id=user_id).first()
        if image is None:
            return None
        image.deleted = True
        self.session.commit()
        return image


def get_store():
    store = g.get('store')
    if store is None:
        store = Store(db.session)
        try:
            store.ping()
        except SQLAlchemyError as e:
            logger.error(f'Store unavailable: {e}')
            db.session.rollback()
            raise StoreUnavailable(details=str(e))
        g.store = store
    return store


def requires_store(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        get_store()
        return view(*args, **kwargs)
    return wrapper
