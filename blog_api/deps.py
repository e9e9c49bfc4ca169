"""
Accessors for the collaborators create_app() builds and parks in app.extensions.
"""
from flask import current_app

from models import DBStorage, UserStore
from utils.session_manager import SessionManager


def get_storage() -> DBStorage:
    return current_app.extensions["storage"]


def get_user_store() -> UserStore:
    return current_app.extensions["user_store"]


def get_session_manager() -> SessionManager:
    return current_app.extensions["session_manager"]
