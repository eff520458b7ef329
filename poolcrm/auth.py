# poolcrm/auth.py
"""Admin sign-in and the "current admin" contract used by every action."""

import logging
from dataclasses import dataclass

from flask import Blueprint, g, jsonify, request, session
from werkzeug.security import check_password_hash, generate_password_hash

from poolcrm import db
from poolcrm.errors import ForbiddenError, UnauthorizedError
from poolcrm.models import Admin
from poolcrm.results import envelope_response, error_result, success_result

logger = logging.getLogger(__name__)

bp = Blueprint('auth', __name__)

SESSION_KEY = 'admin_id'


@dataclass(frozen=True)
class AdminPrincipal:
    admin_id: str
    email: str
    full_name: str
    is_active: bool = True

    @classmethod
    def from_admin(cls, admin: Admin) -> 'AdminPrincipal':
        return cls(admin.id, admin.email, admin.full_name, bool(admin.is_active))

    def to_dict(self) -> dict:
        return {'id': self.admin_id, 'email': self.email, 'full_name': self.full_name}


def load_principal():
    """Resolve the signed-in admin once per request into ``g.principal``."""
    g.principal = None
    admin_id = session.get(SESSION_KEY)
    if not admin_id:
        return
    admin = db.session.get(Admin, admin_id)
    if admin is None:
        session.pop(SESSION_KEY, None)
        return
    g.principal = AdminPrincipal.from_admin(admin)


def current_principal():
    return g.get('principal')


def require_admin(principal):
    if principal is None:
        raise UnauthorizedError()
    if not principal.is_active:
        raise ForbiddenError('Admin account is deactivated')
    return principal


def create_admin(email: str, full_name: str, password: str) -> Admin:
    admin = Admin(
        email=email.strip().lower(),
        full_name=full_name.strip(),
        password_hash=generate_password_hash(password),
    )
    db.session.add(admin)
    db.session.commit()
    return admin


def authenticate(email: str, password: str):
    admin = Admin.query.filter_by(email=(email or '').strip().lower()).first()
    if admin is None or not check_password_hash(admin.password_hash, password or ''):
        return None
    return admin


@bp.route('/login', methods=['POST'])
def login():
    data = request.get_json(silent=True) or request.form
    admin = authenticate(data.get('email'), data.get('password'))
    if admin is None:
        logger.info('Failed login for %s', data.get('email'))
        return envelope_response(error_result('Invalid email or password', 'UNAUTHORIZED'))
    if not admin.is_active:
        return envelope_response(error_result('Admin account is deactivated', 'FORBIDDEN'))
    session.clear()
    session[SESSION_KEY] = admin.id
    logger.info('Admin %s signed in', admin.email)
    return jsonify(success_result(AdminPrincipal.from_admin(admin).to_dict()))


@bp.route('/logout', methods=['POST'])
def logout():
    session.pop(SESSION_KEY, None)
    return jsonify(success_result(None))


@bp.route('/me')
def me():
    principal = current_principal()
    if principal is None:
        return envelope_response(error_result('Authentication required', 'UNAUTHORIZED'))
    return jsonify(success_result(principal.to_dict()))
