import logging

from flask import Blueprint, request, jsonify, g
from flask_jwt_extended import create_access_token
from sqlalchemy.exc import IntegrityError

from extensions import db
from middleware.auth import authenticate, admin_required
from notifications.dispatcher import get_dispatcher
from users.models import User, UserPatch, ROLES, ROLE_ADMIN, ROLE_STAFF
from users.store import UserStore

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')
users_bp = Blueprint('users', __name__, url_prefix='/api/users')


# ✅ Register (new accounts wait for admin approval)
@auth_bp.route('/register', methods=['POST'])
def register_user():
    data = request.get_json(silent=True) or {}
    username = data.get('username')
    email = data.get('email')
    password = data.get('password')

    if not username or not email or not password:
        return jsonify({'error': 'Username, email, and password are required'}), 400

    if User.query.filter((User.username == username) | (User.email == email)).first():
        return jsonify({'error': 'User already exists'}), 409

    new_user = User(
        username=username,
        email=email,
        phone=data.get('phone'),
        role=ROLE_STAFF,
        approved=False,
    )
    new_user.set_password(password)
    db.session.add(new_user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({'error': 'User already exists'}), 409

    logger.info("Registered user %s (%s)", new_user.id, new_user.email)
    return jsonify({
        'message': 'User registered successfully. Please wait for admin approval.',
        'user': new_user.to_dict()
    }), 201


# ✅ Login
@auth_bp.route('/login', methods=['POST'])
def login_user():
    data = request.get_json(silent=True) or {}
    email = data.get('email')
    password = data.get('password')

    if not email or not password:
        return jsonify({'error': 'Email and password are required'}), 400

    user = User.query.filter_by(email=email).first()
    if not user or not user.check_password(password):
        return jsonify({'error': 'Invalid credentials'}), 401

    if not user.approved:
        return jsonify({'error': 'Your account is pending admin approval'}), 403

    access_token = create_access_token(identity=str(user.id))
    return jsonify({
        'message': 'Login successful',
        'user': user.to_dict(),
        'token': access_token
    }), 200


# ✅ Protected user info route
@auth_bp.route('/me', methods=['GET'])
@authenticate
def get_current_user():
    return jsonify({'user': g.current_user.to_dict()}), 200


# ---------- Admin: approve / reject ----------
@auth_bp.route('/approve-user/<int:user_id>', methods=['POST'])
@authenticate
@admin_required
def approve_user(user_id):
    store = UserStore()
    user = store.require(user_id)
    store.update(user, UserPatch(approved=True))

    # payment instructions for the newly approved account; never fails the approval
    if user.role != ROLE_ADMIN:
        try:
            get_dispatcher().send_payment_instructions(user.email, user.username)
        except Exception:
            logger.exception("Failed to send payment instructions email to %s", user.email)

    return jsonify({'message': 'User approved successfully', 'user': user.to_dict()}), 200


@auth_bp.route('/reject-user/<int:user_id>', methods=['POST'])
@authenticate
@admin_required
def reject_user(user_id):
    store = UserStore()
    user = store.require(user_id)
    store.update(user, UserPatch(approved=False))
    return jsonify({'message': 'User approval removed', 'user': user.to_dict()}), 200


# ---------- Admin: user management ----------
@users_bp.route('', methods=['GET'])
@authenticate
@admin_required
def list_users():
    users = User.query.order_by(User.created_at.desc(), User.id.desc()).all()
    return jsonify({'users': [u.to_dict() for u in users]}), 200


@users_bp.route('/<int:user_id>', methods=['GET'])
@authenticate
@admin_required
def get_user(user_id):
    return jsonify({'user': UserStore().require(user_id).to_dict()}), 200


@users_bp.route('/<int:user_id>', methods=['PUT'])
@authenticate
@admin_required
def update_user(user_id):
    store = UserStore()
    user = store.require(user_id)

    patch = UserPatch.from_json(request.get_json(silent=True) or {})
    if patch.is_set('role') and patch.role not in ROLES:
        return jsonify({'error': f"Invalid role, expected one of {', '.join(ROLES)}"}), 400
    if patch.is_empty():
        return jsonify({'error': 'No fields to update'}), 400

    store.update(user, patch)
    return jsonify({'message': 'User updated successfully', 'user': user.to_dict()}), 200


@users_bp.route('/<int:user_id>', methods=['DELETE'])
@authenticate
@admin_required
def delete_user(user_id):
    user = UserStore().require(user_id)

    if user.id == g.current_user.id:
        return jsonify({'error': 'Cannot delete your own account'}), 400

    db.session.delete(user)
    db.session.commit()
    return jsonify({'message': 'User deleted successfully'}), 200
