# Database models (User, Image)
from datetime import datetime

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

IMAGE_TYPES = ('enhanced', 'thumbnail')


def _isoformat(value):
    return value.isoformat() if value else None


class User(db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    username = db.Column(db.String(120), nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    is_admin = db.Column(db.Boolean, nullable=False, default=False)
    deleted = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    images = db.relationship('Image', backref='user', lazy=True)

    @staticmethod
    def normalize_email(email):
        return (email or '').strip().lower()

    @staticmethod
    def username_from_email(email):
        return email.split('@')[0]

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'username': self.username,
            'is_admin': self.is_admin,
            'deleted': self.deleted,
        }

    def __repr__(self):
        return f'<User {self.email}>'


class Image(db.Model):
    __tablename__ = 'images'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    type = db.Column(db.Enum(*IMAGE_TYPES, name='image_type'), nullable=False)
    file_path = db.Column(db.String(512), nullable=False, index=True)
    context = db.Column(db.Text, nullable=True)
    original_name = db.Column(db.String(255), nullable=False)
    deleted = db.Column(db.Boolean, nullable=False, default=False)
    download_token = db.Column(db.String(64), unique=True, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'type': self.type,
            'file_path': self.file_path,
            'context': self.context,
            'original_name': self.original_name,
            'deleted': self.deleted,
            'download_token': self.download_token,
            'created_at': _isoformat(self.created_at),
            'updated_at': _isoformat(self.updated_at),
        }

    def __repr__(self):
        return f'<Image {self.id} file={self.file_path}>'
