# users/store.py
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from extensions import db
from payments.errors import Conflict, DependencyFailure, NotFound
from users.models import User, ROLE_ADMIN


class UserStore:
    """Reads and partial updates of users for the payment core and admin routes."""

    def get(self, user_id):
        try:
            return db.session.get(User, int(user_id))
        except SQLAlchemyError as e:
            db.session.rollback()
            raise DependencyFailure(f"Failed to load user {user_id}: {e}")

    def require(self, user_id):
        user = self.get(user_id)
        if user is None:
            raise NotFound("User not found", user_id=user_id)
        return user

    def billable(self):
        """Approved, non-admin users in id order: the population the daily check covers."""
        try:
            return (
                User.query
                .filter(User.approved.is_(True), User.role != ROLE_ADMIN)
                .order_by(User.id)
                .all()
            )
        except SQLAlchemyError as e:
            db.session.rollback()
            raise DependencyFailure(f"Failed to list billable users: {e}")

    def update(self, user, patch):
        for field, value in patch.changes().items():
            setattr(user, field, value)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise Conflict("Username or email already in use")
        except SQLAlchemyError as e:
            db.session.rollback()
            raise DependencyFailure(f"Failed to update user {user.id}: {e}")
        return user
